# pylint: disable=missing-module-docstring,missing-function-docstring

from client.turn_state import (
    CaptureFailed,
    DropAudio,
    EnqueueAudio,
    LogEvent,
    ModelAudioArrived,
    PlaybackDrained,
    RecordingStarted,
    RecordingStopped,
    SendInterrupt,
    StartCapture,
    StopCapture,
    StopPlayback,
    SubmitRecording,
    TurnState,
    reduce,
)


def effects(commands: list) -> list:
    """Commands minus log events."""
    return [c for c in commands if not isinstance(c, LogEvent)]


# ---------------------------------------------------------------------
# Model audio
# ---------------------------------------------------------------------

def test_first_model_audio_starts_responding() -> None:
    state, cmds = reduce(TurnState.IDLE, ModelAudioArrived(b"\x00\x00"))

    assert state is TurnState.RESPONDING
    assert effects(cmds) == [EnqueueAudio(b"\x00\x00")]


def test_more_model_audio_keeps_responding() -> None:
    state, cmds = reduce(TurnState.RESPONDING, ModelAudioArrived(b"\x01\x00"))

    assert state is TurnState.RESPONDING
    assert cmds == [EnqueueAudio(b"\x01\x00")]


def test_model_audio_while_recording_is_dropped() -> None:
    state, cmds = reduce(TurnState.RECORDING, ModelAudioArrived(b"\x01\x00\x02\x00"))

    assert state is TurnState.RECORDING
    assert cmds == [DropAudio(size=4)]


def test_drained_returns_to_idle() -> None:
    state, cmds = reduce(TurnState.RESPONDING, PlaybackDrained())

    assert state is TurnState.IDLE
    assert effects(cmds) == []


# ---------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------

def test_recording_from_responding_stops_playback_then_interrupts() -> None:
    state, cmds = reduce(TurnState.RESPONDING, RecordingStarted(1234))

    assert state is TurnState.RECORDING
    assert effects(cmds) == [StopPlayback(), SendInterrupt(1234), StartCapture()]


def test_recording_from_idle_also_interrupts() -> None:
    state, cmds = reduce(TurnState.IDLE, RecordingStarted(5))

    assert state is TurnState.RECORDING
    assert [c for c in cmds if isinstance(c, SendInterrupt)] == [SendInterrupt(5)]


def test_repeated_start_sends_no_second_interrupt() -> None:
    state, cmds = reduce(TurnState.RECORDING, RecordingStarted(6))

    assert state is TurnState.RECORDING
    assert effects(cmds) == []
    assert cmds[0].event_type == "TURN_EVENT_IGNORED"


def test_stop_submits_one_turn() -> None:
    state, cmds = reduce(TurnState.RECORDING, RecordingStopped(77))

    assert state is TurnState.IDLE
    assert effects(cmds) == [StopCapture(), SubmitRecording(77)]


# ---------------------------------------------------------------------
# Ignored pairs
# ---------------------------------------------------------------------

def test_ignored_pairs_keep_state_and_log() -> None:
    for state, event in [
        (TurnState.IDLE, PlaybackDrained()),
        (TurnState.RECORDING, PlaybackDrained()),
        (TurnState.IDLE, RecordingStopped(1)),
        (TurnState.RESPONDING, RecordingStopped(1)),
    ]:
        new_state, cmds = reduce(state, event)
        assert new_state is state
        assert effects(cmds) == []
        assert [c.event_type for c in cmds] == ["TURN_EVENT_IGNORED"]


def test_full_barge_in_sequence_has_one_interrupt() -> None:
    state = TurnState.IDLE
    all_cmds: list = []
    for event in [
        ModelAudioArrived(b"a\x00"),
        ModelAudioArrived(b"b\x00"),
        RecordingStarted(10),
        ModelAudioArrived(b"c\x00"),
        RecordingStarted(11),
        RecordingStopped(12),
    ]:
        state, cmds = reduce(state, event)
        all_cmds.extend(effects(cmds))

    assert state is TurnState.IDLE
    interrupts = [c for c in all_cmds if isinstance(c, SendInterrupt)]
    assert interrupts == [SendInterrupt(10)]
    assert all_cmds.index(SendInterrupt(10)) < all_cmds.index(SubmitRecording(12))


def test_capture_failure_returns_to_idle() -> None:
    state, cmds = reduce(TurnState.RECORDING, CaptureFailed("no input device"))

    assert state is TurnState.IDLE
    assert effects(cmds) == []


def test_capture_failure_outside_recording_is_ignored() -> None:
    state, cmds = reduce(TurnState.IDLE, CaptureFailed("late"))

    assert state is TurnState.IDLE
    assert [c.event_type for c in cmds] == ["TURN_EVENT_IGNORED"]
