"""
Client capture controller.

Owns the microphone and the client turn state, and executes the commands
emitted by client.turn_state.reduce():

- start_recording(): playback is stopped and its queue discarded before the
  call yields, then one `interrupt` is sent, then capture starts
- stop_recording(): capture stops, the recording is converted to 16kHz WAV
  and sent as `audio_with_timestamp` followed by the WAV binary frame
- on_model_audio(): model audio is queued for playback, or dropped while
  recording
"""

from __future__ import annotations

import asyncio
from typing import Callable, Protocol

import numpy as np

from audio.converter import AudioFormatConverter
from client.devices import AudioCapture
from client.playback import AudioPlaybackBuffer
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
    TurnCommand,
    TurnEvent,
    TurnState,
    reduce,
)
from errors import CaptureError, DecodeError
from observability.logger import log_event, now_ms
from observability.metrics import timed
from protocol.control import AudioWithTimestamp, ControlMessage, InterruptMessage


class ControlChannel(Protocol):
    """Client-to-server half of the transport bridge."""

    async def send_control(self, msg: ControlMessage) -> None:
        """Send one JSON control frame."""

    async def send_binary(self, data: bytes) -> None:
        """Send one binary frame."""


class ClientCaptureController:
    """
    Push-to-talk controller.

    Not re-entrant: start/stop calls must not overlap.
    """

    def __init__(
        self,
        *,
        capture: AudioCapture,
        playback: AudioPlaybackBuffer,
        channel: ControlChannel,
        converter: AudioFormatConverter | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._capture = capture
        self._playback = playback
        self._channel = channel
        self._converter = converter or AudioFormatConverter()
        self._clock = clock

        self.state: TurnState = TurnState.IDLE
        self._frames: list[np.ndarray] = []
        self.model_chunks_dropped = 0
        self.utterances_sent = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start_recording(self) -> None:
        await self._perform(self._apply(RecordingStarted(self._clock())))

    async def stop_recording(self) -> None:
        await self._perform(self._apply(RecordingStopped(self._clock())))

    def on_model_audio(self, pcm: bytes) -> None:
        """Called by the transport for every model audio frame."""
        self._apply(ModelAudioArrived(pcm))

    def on_playback_drained(self) -> None:
        """Wired as the playback buffer's on_drained callback."""
        self._apply(PlaybackDrained())

    @property
    def is_recording(self) -> bool:
        return self.state is TurnState.RECORDING

    # ------------------------------------------------------------------
    # Command execution
    # ------------------------------------------------------------------

    def _apply(self, event: TurnEvent) -> list[TurnCommand]:
        """
        Reduce and run the synchronous commands in order.

        Returns the commands that need awaiting.
        """
        self.state, commands = reduce(self.state, event)

        pending: list[TurnCommand] = []
        for cmd in commands:
            if isinstance(cmd, StopPlayback):
                self._playback.interrupt()
            elif isinstance(cmd, EnqueueAudio):
                self._playback.on_chunk(cmd.data)
            elif isinstance(cmd, DropAudio):
                self.model_chunks_dropped += 1
            elif isinstance(cmd, LogEvent):
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": cmd.event_type,
                    "level": "DEBUG",
                    **cmd.details,
                })
            else:
                pending.append(cmd)
        return pending

    async def _perform(self, commands: list[TurnCommand]) -> None:
        for cmd in commands:
            if isinstance(cmd, SendInterrupt):
                await self._channel.send_control(InterruptMessage(cmd.timestamp_ms))

            elif isinstance(cmd, StartCapture):
                self._frames = []
                try:
                    await self._capture.start(self._frames.append)
                except CaptureError as e:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "CAPTURE_START_FAILED",
                        "level": "WARNING",
                        "error": str(e),
                    })
                    self._apply(CaptureFailed(str(e)))
                    return

            elif isinstance(cmd, StopCapture):
                await self._capture.stop()

            elif isinstance(cmd, SubmitRecording):
                await self._submit_recording(cmd.timestamp_ms)

    async def _submit_recording(self, timestamp_ms: int) -> None:
        frames = self._frames
        self._frames = []
        if not frames:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RECORDING_EMPTY",
                "level": "WARNING",
            })
            return

        samples = np.concatenate([np.asarray(f, dtype=np.float32) for f in frames])
        try:
            with timed("capture_encode", details={"frames": len(frames)}):
                wav = await asyncio.to_thread(
                    self._converter.encode_samples,
                    samples,
                    sample_rate_hz=self._capture.sample_rate_hz,
                )
        except DecodeError as e:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "RECORDING_ENCODE_FAILED",
                "level": "WARNING",
                "error": str(e),
            })
            return

        await self._channel.send_control(AudioWithTimestamp(timestamp_ms))
        await self._channel.send_binary(wav)
        self.utterances_sent += 1

        log_event({
            "ts_ms": now_ms(),
            "event_type": "RECORDING_SUBMITTED",
            "wav_bytes": len(wav),
            "samples_in": int(samples.shape[0]),
            "capture_rate_hz": self._capture.sample_rate_hz,
        })
