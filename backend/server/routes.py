"""
Route registration for the voice relay API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the gateway to the WebSocket lifecycle
- Pull dependencies from app.state
"""

from __future__ import annotations

import asyncio
from typing import Any

import anyio
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from errors import TransportError
from observability.logger import log_event, now_ms
from protocol.control import ErrorMessage
from server.transport import WebSocketSink
from session.gateway import SessionGateway


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok", "sessions": len(app.state.registry)}

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        sink = WebSocketSink(ws)
        gateway = SessionGateway(
            config=app.state.config,
            registry=app.state.registry,
            sink=sink,
            stream_factory=app.state.stream_factory,
        )

        tasks: list[asyncio.Task[None]] = []
        reason = "handler_cancelled"
        close_code = 1000

        try:
            if not await gateway.on_ws_connect():
                reason = "model_connect_failed"
                close_code = 1011
                return

            receive_task = asyncio.create_task(_receive_loop(ws, gateway))
            tasks.append(receive_task)
            tasks.append(asyncio.create_task(gateway.wait_closed()))

            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            if receive_task in done:
                # Raises WebSocketDisconnect or the handler's failure
                receive_task.result()

            # Model side ended first (error, timeout, upstream close)
            reason = "model_session_ended"

        except WebSocketDisconnect:
            reason = "client_disconnect"

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "WS_FATAL_ERROR",
                "level": "ERROR",
                "session_id": gateway.session.session_id if gateway.session else None,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await _send_error_best_effort(sink, f"Server error: {exc}")
            reason = "server_error"
            close_code = 1011

        finally:
            # Also runs when the server cancels the handler; the scope keeps
            # the teardown awaits from being cancelled in turn
            with anyio.CancelScope(shield=True):
                await _stop_tasks(tasks)
                if gateway.session is not None:
                    await gateway.on_ws_disconnect(reason=reason)
                if reason != "client_disconnect":
                    await sink.close(code=close_code)


async def _stop_tasks(tasks: list[asyncio.Task[None]]) -> None:
    """Cancel the connection's tasks and collect their outcomes."""
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def _receive_loop(ws: WebSocket, gateway: SessionGateway) -> None:
    """Feed inbound frames to the gateway until the client goes away."""
    while True:
        msg = await ws.receive()

        if msg["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(code=msg.get("code", 1000))

        if msg.get("text") is not None:
            await gateway.on_json_message(msg["text"])

        elif msg.get("bytes") is not None:
            await gateway.on_binary_message(msg["bytes"])


async def _send_error_best_effort(sink: WebSocketSink, message: str) -> None:
    if not sink.is_connected:
        return
    try:
        await sink.send_control(ErrorMessage(message))
    except TransportError:
        pass
