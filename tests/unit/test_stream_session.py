# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import base64
from dataclasses import replace
from typing import Any

import pytest

import session.stream_session as stream_session_mod
from errors import ModelConnectionError, TransportError
from session.model_events import AudioPart, Closed, Errored, Interrupted, TurnComplete
from session.stream_session import SessionState, StreamSession

from fakes import MODEL_CONFIG, FakeModelStream, RecordingSink, wait_until


PCM_A = b"\x01\x00" * 240
PCM_B = b"\x02\x00" * 240
PCM_C = b"\x03\x00" * 240


def audio(pcm: bytes) -> AudioPart:
    return AudioPart(data=pcm, mime_type="audio/pcm;rate=24000")


def make_session(stream: FakeModelStream, sink: Any, **config: Any) -> StreamSession:
    return StreamSession(
        session_id="sess_test",
        stream_factory=lambda _sid: stream,
        sink=sink,
        model_config=replace(MODEL_CONFIG, **config),
    )


# ---------------------------------------------------------------------
# Open / close
# ---------------------------------------------------------------------

def test_open_reports_connected_and_setup_complete() -> None:
    async def scenario() -> tuple[StreamSession, RecordingSink, FakeModelStream]:
        stream = FakeModelStream()
        sink = RecordingSink()
        session = make_session(stream, sink)

        await session.open()
        assert session.state is SessionState.OPEN

        pump = asyncio.create_task(session.run())
        await wait_until(lambda: len(sink.frames) == 2)
        await session.close()
        await asyncio.wait_for(pump, timeout=1.0)
        return session, sink, stream

    session, sink, stream = asyncio.run(scenario())

    assert sink.statuses() == ["Connected to Gemini Live", "Setup complete"]
    assert sink.errors() == []
    assert session.state is SessionState.CLOSED
    assert stream.closed


def test_open_failure_closes_stream_and_raises() -> None:
    stream = FakeModelStream(fail_open="refused")
    session = make_session(stream, RecordingSink())

    with pytest.raises(ModelConnectionError):
        asyncio.run(session.open())

    assert session.state is SessionState.CLOSED
    assert stream.closed
    assert not session.is_open


def test_close_is_idempotent(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(stream_session_mod, "log_event", emitted.append)

    async def scenario() -> None:
        session = make_session(FakeModelStream(), RecordingSink())
        await session.open()
        await session.close()
        await session.close()

    asyncio.run(scenario())

    assert [e["event_type"] for e in emitted].count("SESSION_CLOSED") == 1


# ---------------------------------------------------------------------
# Turns
# ---------------------------------------------------------------------

def test_audio_turn_scenario_frame_order() -> None:
    async def scenario() -> tuple[RecordingSink, FakeModelStream]:
        stream = FakeModelStream(replies=[[audio(PCM_A), audio(PCM_B), TurnComplete()]])
        sink = RecordingSink()
        session = make_session(stream, sink)
        await session.open()
        pump = asyncio.create_task(session.run())

        await session.submit_audio(b"\x00\x00" * 32_000, "audio/pcm;rate=16000")
        await wait_until(lambda: "Turn complete" in sink.statuses())

        await session.close()
        await asyncio.wait_for(pump, timeout=1.0)
        return sink, stream

    sink, stream = asyncio.run(scenario())

    assert len(stream.sent) == 1
    parts, turn_complete = stream.sent[0]
    assert turn_complete is True
    assert parts[0]["inlineData"]["mimeType"] == "audio/pcm;rate=16000"
    assert base64.b64decode(parts[0]["inlineData"]["data"]) == b"\x00\x00" * 32_000

    after_setup = sink.frames[2:]
    assert after_setup == [
        ("json", {"type": "audio"}),
        ("bytes", PCM_A),
        ("json", {"type": "audio"}),
        ("bytes", PCM_B),
        ("json", {"type": "status", "message": "Turn complete"}),
    ]


def test_one_model_turn_per_client_message() -> None:
    async def scenario() -> FakeModelStream:
        stream = FakeModelStream(replies=[[TurnComplete()], [TurnComplete()]])
        sink = RecordingSink()
        session = make_session(stream, sink)
        await session.open()
        pump = asyncio.create_task(session.run())

        await session.submit_text("first")
        await session.submit_text("second")
        await wait_until(lambda: sink.statuses().count("Turn complete") == 2)

        await session.close()
        await asyncio.wait_for(pump, timeout=1.0)
        return stream

    stream = asyncio.run(scenario())

    assert [p for p, _ in stream.sent] == [[{"text": "first"}], [{"text": "second"}]]
    assert all(tc for _, tc in stream.sent)


def test_submit_on_closed_session_raises() -> None:
    async def scenario() -> None:
        session = make_session(FakeModelStream(), RecordingSink())
        await session.open()
        await session.close()
        await session.submit_text("late")

    with pytest.raises(ModelConnectionError):
        asyncio.run(scenario())


# ---------------------------------------------------------------------
# Interruption mirror
# ---------------------------------------------------------------------

def test_interrupt_drops_rest_of_inflight_turn_until_next_submit() -> None:
    async def scenario() -> RecordingSink:
        stream = FakeModelStream(replies=[[audio(PCM_A)], [audio(PCM_C), TurnComplete()]])
        sink = RecordingSink()
        session = make_session(stream, sink)
        await session.open()
        pump = asyncio.create_task(session.run())

        await session.submit_text("tell me a story")
        await wait_until(lambda: ("bytes", PCM_A) in sink.frames)

        session.interrupt(1_700_000_000_000)
        stream.push(audio(PCM_B), Interrupted(), TurnComplete())
        await wait_until(lambda: "Turn complete" in sink.statuses())

        await session.submit_text("new question")
        await wait_until(lambda: sink.statuses().count("Turn complete") == 2)

        await session.close()
        await asyncio.wait_for(pump, timeout=1.0)
        return sink

    sink = asyncio.run(scenario())

    binaries = [data for kind, data in sink.frames if kind == "bytes"]
    assert binaries == [PCM_A, PCM_C]
    assert sink.errors() == []


# ---------------------------------------------------------------------
# Errors / teardown
# ---------------------------------------------------------------------

def test_model_error_then_close_yields_one_error_and_teardown() -> None:
    async def scenario() -> tuple[StreamSession, RecordingSink, FakeModelStream]:
        stream = FakeModelStream(replies=[[Errored(message="quota exceeded"), Closed(reason="1011")]])
        sink = RecordingSink()
        session = make_session(stream, sink)
        await session.open()
        pump = asyncio.create_task(session.run())

        await session.submit_text("hi")
        await asyncio.wait_for(pump, timeout=1.0)
        return session, sink, stream

    session, sink, stream = asyncio.run(scenario())

    assert sink.errors() == ["Gemini error: quota exceeded"]
    assert session.state is SessionState.CLOSED
    assert stream.closed


def test_upstream_close_surfaces_error() -> None:
    async def scenario() -> RecordingSink:
        stream = FakeModelStream()
        sink = RecordingSink()
        session = make_session(stream, sink)
        await session.open()
        pump = asyncio.create_task(session.run())
        stream.push(Closed(reason="server going away"))
        await asyncio.wait_for(pump, timeout=1.0)
        return sink

    sink = asyncio.run(scenario())

    assert sink.errors() == ["Gemini session closed: server going away"]


def test_idle_timeout_after_submit() -> None:
    async def scenario() -> tuple[StreamSession, RecordingSink, FakeModelStream]:
        stream = FakeModelStream(replies=[[]])
        sink = RecordingSink()
        session = make_session(stream, sink, response_timeout_s=0.05)
        await session.open()
        pump = asyncio.create_task(session.run())

        await session.submit_text("anyone there?")
        await asyncio.wait_for(pump, timeout=2.0)
        return session, sink, stream

    session, sink, stream = asyncio.run(scenario())

    assert sink.errors() == ["Gemini response timed out after 0.05s"]
    assert session.state is SessionState.CLOSED
    assert stream.closed


def test_no_timeout_while_idle() -> None:
    async def scenario() -> RecordingSink:
        stream = FakeModelStream()
        sink = RecordingSink()
        session = make_session(stream, sink, response_timeout_s=0.02)
        await session.open()
        pump = asyncio.create_task(session.run())

        await asyncio.sleep(0.1)
        assert not pump.done()

        await session.close()
        await asyncio.wait_for(pump, timeout=1.0)
        return sink

    sink = asyncio.run(scenario())

    assert sink.errors() == []


def test_late_turn_complete_of_interrupted_turn_keeps_new_turn_bounded() -> None:
    async def scenario() -> tuple[RecordingSink, asyncio.Task[None]]:
        stream = FakeModelStream()
        sink = RecordingSink()
        session = make_session(stream, sink, response_timeout_s=0.1)
        await session.open()
        pump = asyncio.create_task(session.run())

        await session.submit_text("first")
        session.interrupt(1)
        await session.submit_text("second")
        # Completion of the first turn arrives after the second was sent
        stream.push(TurnComplete())

        await asyncio.wait_for(pump, timeout=1.0)
        return sink, pump

    sink, pump = asyncio.run(scenario())

    assert pump.done()
    assert "Turn complete" in sink.statuses()
    assert sink.errors() == ["Gemini response timed out after 0.1s"]


class BrokenSink(RecordingSink):
    async def send_audio(self, pcm: bytes) -> None:
        raise TransportError("client gone")


def test_transport_error_tears_down_session() -> None:
    async def scenario() -> tuple[StreamSession, FakeModelStream]:
        stream = FakeModelStream(replies=[[audio(PCM_A)]])
        session = make_session(stream, BrokenSink())
        await session.open()
        pump = asyncio.create_task(session.run())
        await session.submit_text("hi")
        await asyncio.wait_for(pump, timeout=1.0)
        return session, stream

    session, stream = asyncio.run(scenario())

    assert session.state is SessionState.CLOSED
    assert stream.closed
