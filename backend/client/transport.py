"""
Client side of the transport bridge.

One websockets connection to the relay's /ws endpoint:
- text frames are decoded as control messages; `audio` marks the next
  binary frame as model audio
- binary frames are handed to on_model_audio
- status/error messages are logged and passed to on_control
- send failures surface as TransportError
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from errors import TransportError
from observability.logger import log_event, now_ms
from protocol.control import (
    AudioAnnouncement,
    ControlMessage,
    ControlProtocolError,
    ErrorMessage,
    StatusMessage,
    decode_control,
    encode_control,
)

ConnectFn = Callable[..., Awaitable[Any]]


class RelayClient:
    """
    Duplex channel to the relay server.

    Implements the capture controller's ControlChannel.
    """

    def __init__(
        self,
        url: str,
        *,
        on_model_audio: Callable[[bytes], None],
        on_control: Callable[[ControlMessage], None] | None = None,
        connect: ConnectFn = ws_connect,
    ) -> None:
        self.url = url
        self._on_model_audio = on_model_audio
        self._on_control = on_control
        self._connect = connect

        self._ws: Any = None
        self._audio_announced = False
        self.last_error: str | None = None
        self.audio_frames_received = 0

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """
        Raises:
            TransportError if the server cannot be reached.
        """
        try:
            self._ws = await self._connect(self.url)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"cannot connect to {self.url}: {e}") from e
        log_event({
            "ts_ms": now_ms(),
            "event_type": "RELAY_CONNECTED",
            "url": self.url,
        })

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is not None:
            await ws.close()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send_control(self, msg: ControlMessage) -> None:
        await self._send(encode_control(msg))

    async def send_binary(self, data: bytes) -> None:
        await self._send(data)

    async def _send(self, frame: str | bytes) -> None:
        if self._ws is None:
            raise TransportError("relay connection is not open")
        try:
            await self._ws.send(frame)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"send failed: {e}") from e

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Receive frames until the server closes the connection."""
        ws = self._ws
        if ws is None:
            raise TransportError("relay connection is not open")

        try:
            async for frame in ws:
                if isinstance(frame, bytes):
                    self._handle_binary(frame)
                else:
                    self._handle_text(frame)
        except ConnectionClosed as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RELAY_CONNECTION_LOST",
                "level": "WARNING",
                "error": str(e),
            })
            return

        log_event({
            "ts_ms": now_ms(),
            "event_type": "RELAY_DISCONNECTED",
            "last_error": self.last_error,
        })

    def _handle_text(self, text: str) -> None:
        try:
            msg = decode_control(text)
        except ControlProtocolError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RELAY_BAD_CONTROL_FRAME",
                "level": "WARNING",
                "error": str(e),
                "payload_preview": text[:100],
            })
            return

        if isinstance(msg, AudioAnnouncement):
            self._audio_announced = True
            return

        if isinstance(msg, StatusMessage):
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RELAY_STATUS",
                "message": msg.message,
            })
        elif isinstance(msg, ErrorMessage):
            self.last_error = msg.message
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RELAY_ERROR",
                "level": "ERROR",
                "message": msg.message,
            })

        if self._on_control is not None:
            self._on_control(msg)

    def _handle_binary(self, data: bytes) -> None:
        if not self._audio_announced:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RELAY_UNANNOUNCED_BINARY",
                "level": "DEBUG",
                "size": len(data),
            })
        self._audio_announced = False
        self.audio_frames_received += 1
        self._on_model_audio(data)
