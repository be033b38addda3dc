"""
Server side of the transport bridge.

Wraps one accepted FastAPI WebSocket and implements the session's
OutboundSink:
- JSON control frames go out as text frames
- Model audio goes out as an `audio` announcement immediately followed by
  its binary frame; the send lock keeps the pair adjacent
- Starlette send failures surface as TransportError
"""

from __future__ import annotations

import asyncio

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from errors import TransportError
from protocol.control import AudioAnnouncement, ControlMessage, encode_control


class WebSocketSink:
    """OutboundSink over a Starlette/FastAPI WebSocket."""

    def __init__(self, ws: WebSocket) -> None:
        self._ws = ws
        self._send_lock = asyncio.Lock()
        self.frames_sent = 0
        self.bytes_sent = 0

    @property
    def is_connected(self) -> bool:
        return (
            self._ws.client_state is WebSocketState.CONNECTED
            and self._ws.application_state is WebSocketState.CONNECTED
        )

    async def send_control(self, msg: ControlMessage) -> None:
        async with self._send_lock:
            await self._send_text(encode_control(msg))

    async def send_audio(self, pcm: bytes) -> None:
        async with self._send_lock:
            await self._send_text(encode_control(AudioAnnouncement()))
            await self._send_bytes(pcm)

    async def close(self, code: int = 1000) -> None:
        """Close the socket if it is still open. Never raises."""
        if not self.is_connected:
            return
        async with self._send_lock:
            try:
                await self._ws.close(code=code)
            except (RuntimeError, WebSocketDisconnect):
                pass

    async def _send_text(self, text: str) -> None:
        try:
            await self._ws.send_text(text)
        except (RuntimeError, WebSocketDisconnect) as e:
            raise TransportError(f"send_text failed: {e}") from e
        self.frames_sent += 1

    async def _send_bytes(self, data: bytes) -> None:
        try:
            await self._ws.send_bytes(data)
        except (RuntimeError, WebSocketDisconnect) as e:
            raise TransportError(f"send_bytes failed: {e}") from e
        self.frames_sent += 1
        self.bytes_sent += len(data)
