"""
Duplex stream to the Gemini Live dialogue model.

Core model:
- One raw WebSocket (BidiGenerateContent) per session, owned by that
  session's StreamSession.
- The setup message negotiates response modality, voice, language, system
  instruction and context window compression exactly once, in open().
- Inbound server messages are turned into ModelEvents and pushed onto an
  asyncio.Queue. The session consumes them with next_event(); there are no
  callbacks.
- Closed is always the last event. Errored, when present, precedes it.

Design constraints:
- The stream does not know about the client socket.
- The stream never retries or reconnects.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from config import ModelConfig
from constants import (
    CONTEXT_COMPRESSION_TARGET_TOKENS,
    CONTEXT_COMPRESSION_TRIGGER_TOKENS,
    GEMINI_WEBSOCKET_HOST,
    GEMINI_WEBSOCKET_PATH,
    MEDIA_RESOLUTION,
    MODEL_WS_MAX_MESSAGE_BYTES,
    RESPONSE_MODALITY_AUDIO,
)
from errors import ModelConnectionError
from observability.logger import log_event, now_ms
from session.model_events import (
    AudioPart,
    Closed,
    Errored,
    Interrupted,
    ModelEvent,
    Opened,
    SetupComplete,
    TextPart,
    TurnComplete,
)


# ---------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------

class ModelStream(ABC):
    """
    Abstract duplex model stream.

    Implementations are responsible for:
    - Opening the connection and negotiating configuration (open)
    - Submitting complete user turns (send_client_content)
    - Producing ModelEvents in wire order (next_event)
    - Releasing the connection (close); idempotent
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Connect and negotiate.

        Raises:
            ModelConnectionError if the connection or setup fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_client_content(
        self,
        parts: list[dict[str, Any]],
        *,
        turn_complete: bool = True,
    ) -> None:
        """Submit one user turn made of the given parts."""
        raise NotImplementedError

    @abstractmethod
    async def next_event(self) -> ModelEvent:
        """Wait for the next event. After Closed, keeps returning Closed."""
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        raise NotImplementedError


# ---------------------------------------------------------------------
# Wire helpers (pure)
# ---------------------------------------------------------------------

def build_setup_message(config: ModelConfig) -> dict[str, Any]:
    """Build the BidiGenerateContentSetup message."""
    model = config.model_id
    if not model.startswith("models/"):
        model = f"models/{model}"

    return {
        "setup": {
            "model": model,
            "generationConfig": {
                "responseModalities": [RESPONSE_MODALITY_AUDIO],
                "mediaResolution": MEDIA_RESOLUTION,
                "speechConfig": {
                    "languageCode": config.language_code,
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {
                            "voiceName": config.voice_id,
                        },
                    },
                },
            },
            "systemInstruction": {
                "parts": [{"text": config.system_instruction}],
            },
            "contextWindowCompression": {
                "triggerTokens": str(CONTEXT_COMPRESSION_TRIGGER_TOKENS),
                "slidingWindow": {
                    "targetTokens": str(CONTEXT_COMPRESSION_TARGET_TOKENS),
                },
            },
        }
    }


def build_client_content(
    parts: list[dict[str, Any]],
    *,
    turn_complete: bool = True,
) -> dict[str, Any]:
    """Build a clientContent message carrying one user turn."""
    return {
        "clientContent": {
            "turns": [{"role": "user", "parts": parts}],
            "turnComplete": turn_complete,
        }
    }


def text_part(text: str) -> dict[str, Any]:
    """A text part for build_client_content()."""
    return {"text": text}


def inline_audio_part(*, mime_type: str, data_b64: str) -> dict[str, Any]:
    """An inline audio part for build_client_content()."""
    return {"inlineData": {"mimeType": mime_type, "data": data_b64}}


def parse_server_message(data: dict[str, Any]) -> list[ModelEvent]:
    """
    Translate one server message into events, in part order.

    Unknown fields are ignored. Inline parts that are not audio or carry
    invalid base64 are skipped.
    """
    events: list[ModelEvent] = []

    if "setupComplete" in data:
        events.append(SetupComplete())

    server_content = data.get("serverContent")
    if not isinstance(server_content, dict):
        return events

    if server_content.get("setupComplete"):
        events.append(SetupComplete())

    model_turn = server_content.get("modelTurn") or {}
    for part in model_turn.get("parts") or []:
        if not isinstance(part, dict):
            continue

        inline = part.get("inlineData")
        if isinstance(inline, dict):
            mime_type = str(inline.get("mimeType", ""))
            b64 = inline.get("data") or ""
            if not mime_type.startswith("audio/") or not b64:
                continue
            try:
                audio = base64.b64decode(b64, validate=True)
            except (binascii.Error, ValueError):
                continue
            events.append(AudioPart(data=audio, mime_type=mime_type))
            continue

        text = part.get("text")
        if isinstance(text, str) and text:
            events.append(TextPart(text=text))

    if server_content.get("interrupted"):
        events.append(Interrupted())

    if server_content.get("turnComplete"):
        events.append(TurnComplete())

    return events


# ---------------------------------------------------------------------
# Gemini Live implementation
# ---------------------------------------------------------------------

ConnectFn = Callable[..., Awaitable[Any]]


class GeminiLiveStream(ModelStream):
    """
    Gemini Live stream over a raw WebSocket.

    `connect` is injectable so tests can substitute a fake socket.
    """

    def __init__(
        self,
        *,
        api_key: str,
        config: ModelConfig,
        session_id: str,
        connect: ConnectFn = ws_connect,
    ) -> None:
        self._api_key = api_key
        self._config = config
        self._session_id = session_id
        self._connect = connect

        self._ws: Any = None
        self._recv_task: asyncio.Task[None] | None = None
        self._events: asyncio.Queue[ModelEvent] = asyncio.Queue()
        self._closed_event: Closed | None = None

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self) -> str:
        return f"wss://{GEMINI_WEBSOCKET_HOST}{GEMINI_WEBSOCKET_PATH}?key={self._api_key}"

    async def open(self) -> None:
        try:
            self._ws = await asyncio.wait_for(
                self._connect(
                    self._build_url(),
                    max_size=MODEL_WS_MAX_MESSAGE_BYTES,
                ),
                timeout=self._config.setup_timeout_s,
            )
            await self._ws.send(json.dumps(build_setup_message(self._config)))
            self._events.put_nowait(Opened())

            raw = await asyncio.wait_for(
                self._ws.recv(),
                timeout=self._config.setup_timeout_s,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            await self._drop_connection()
            raise ModelConnectionError(_describe(e)) from e

        try:
            setup_events = parse_server_message(json.loads(raw))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            await self._drop_connection()
            raise ModelConnectionError(f"invalid setup response: {e}") from e

        if not any(isinstance(e, SetupComplete) for e in setup_events):
            await self._drop_connection()
            raise ModelConnectionError(
                f"unexpected setup response: {str(raw)[:200]}"
            )

        for event in setup_events:
            self._events.put_nowait(event)

        log_event({
            "ts_ms": now_ms(),
            "event_type": "MODEL_STREAM_OPENED",
            "session_id": self._session_id,
            "model": self._config.model_id,
            "voice": self._config.voice_id,
            "language": self._config.language_code,
        })

        self._recv_task = asyncio.create_task(self._recv_loop())

    async def send_client_content(
        self,
        parts: list[dict[str, Any]],
        *,
        turn_complete: bool = True,
    ) -> None:
        if self._ws is None or self._closed_event is not None:
            raise ModelConnectionError("model stream is not open")

        message = build_client_content(parts, turn_complete=turn_complete)
        try:
            await self._ws.send(json.dumps(message))
        except (OSError, WebSocketException) as e:
            raise ModelConnectionError(f"send failed: {_describe(e)}") from e

    async def next_event(self) -> ModelEvent:
        if self._closed_event is not None and self._events.empty():
            return self._closed_event
        event = await self._events.get()
        if isinstance(event, Closed):
            self._closed_event = event
        return event

    async def close(self) -> None:
        task = self._recv_task
        self._recv_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        await self._drop_connection()
        self._finish("closed by relay")

    async def _drop_connection(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            await ws.close()
        except (OSError, WebSocketException) as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "MODEL_STREAM_CLOSE_FAILED",
                "level": "WARNING",
                "session_id": self._session_id,
                "error": _describe(e),
            })

    def _finish(self, reason: str, error: str | None = None) -> None:
        """Enqueue the terminal events once."""
        if self._closed_event is not None:
            return
        if error is not None:
            self._events.put_nowait(Errored(message=error))
        closed = Closed(reason=reason)
        self._closed_event = closed
        self._events.put_nowait(closed)

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self) -> None:
        ws = self._ws
        if ws is None:
            return

        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "MODEL_MESSAGE_DECODE_ERROR",
                        "level": "WARNING",
                        "session_id": self._session_id,
                        "error": str(e),
                    })
                    continue

                if not isinstance(data, dict):
                    continue

                if "goAway" in data:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "MODEL_GO_AWAY",
                        "session_id": self._session_id,
                        "time_left": data["goAway"].get("timeLeft"),
                    })

                for event in parse_server_message(data):
                    self._events.put_nowait(event)

        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            reason = e.rcvd.reason if e.rcvd is not None and e.rcvd.reason else str(e)
            if e.rcvd is not None and e.rcvd.code not in (1000, 1001):
                self._finish(reason, error=reason)
            else:
                self._finish(reason)
            return
        except (OSError, WebSocketException) as e:
            self._finish("connection lost", error=_describe(e))
            return

        # Iterator ended: clean close
        self._finish("connection closed")


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return text if text else type(exc).__name__
