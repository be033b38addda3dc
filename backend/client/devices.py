"""
Audio device capability interfaces and their sounddevice implementations.

The capture controller and the playback buffer only see:

    AudioCapture { start(on_chunk), stop() }
    AudioOutput  { resume(), play(buffer, sample_rate_hz), stop() }

so the pipeline can run against fakes in tests. `sounddevice` is imported
when a device is first opened, not at module import.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Protocol

import numpy as np

from constants import CAPTURE_CHANNELS, CAPTURE_DEVICE_SAMPLE_RATE_HZ_DEFAULT
from errors import CaptureError, PlaybackError
from observability.logger import log_event, now_ms


ChunkCallback = Callable[[np.ndarray], None]


# ---------------------------------------------------------------------
# Capability interfaces
# ---------------------------------------------------------------------

class AudioCapture(Protocol):
    """Microphone surface."""

    sample_rate_hz: int

    async def start(self, on_chunk: ChunkCallback) -> None:
        """
        Begin capture; on_chunk receives float32 frames on the event loop.

        Raises:
            CaptureError if the input device cannot be opened.
        """

    async def stop(self) -> None:
        """End capture. No on_chunk call happens after this returns."""


class AudioOutput(Protocol):
    """Speaker surface."""

    async def resume(self) -> None:
        """Make the device ready (resume from suspended state)."""

    async def play(self, buffer: np.ndarray, sample_rate_hz: int) -> None:
        """
        Play one contiguous buffer; returns when playback ends or is stopped.

        Raises:
            PlaybackError if the device rejects the playback start.
        """

    def stop(self) -> None:
        """Stop output immediately. Synchronous."""


# ---------------------------------------------------------------------
# sounddevice implementations
# ---------------------------------------------------------------------

class SoundDeviceCapture:
    """Callback-driven microphone capture."""

    def __init__(
        self,
        *,
        sample_rate_hz: int = CAPTURE_DEVICE_SAMPLE_RATE_HZ_DEFAULT,
        channels: int = CAPTURE_CHANNELS,
        device: int | str | None = None,
    ) -> None:
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.device = device
        self._stream: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_chunk: ChunkCallback | None = None

    async def start(self, on_chunk: ChunkCallback) -> None:
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        self._loop = asyncio.get_running_loop()
        self._on_chunk = on_chunk
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                channels=self.channels,
                dtype="float32",
                callback=self._audio_callback,
                device=self.device,
            )
            stream.start()
        except (ValueError, sd.PortAudioError) as e:
            self._on_chunk = None
            raise CaptureError(f"input device unavailable: {e}") from e
        self._stream = stream
        log_event({
            "ts_ms": now_ms(),
            "event_type": "CAPTURE_STARTED",
            "sample_rate_hz": self.sample_rate_hz,
            "channels": self.channels,
        })

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        """Runs on the PortAudio thread."""
        if status:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "CAPTURE_STATUS",
                "level": "WARNING",
                "status": str(status),
                "frames": frames,
            })

        loop = self._loop
        on_chunk = self._on_chunk
        if loop is not None and on_chunk is not None:
            loop.call_soon_threadsafe(on_chunk, indata.copy())

    async def stop(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is not None:
            # PortAudio may still deliver blocks while stopping
            stream.stop()
            stream.close()
        # Run callbacks queued by the audio thread before detaching
        await asyncio.sleep(0)
        self._on_chunk = None
        log_event({
            "ts_ms": now_ms(),
            "event_type": "CAPTURE_STOPPED",
        })


class SoundDeviceOutput:
    """Default output device via sounddevice's play/stop."""

    def __init__(self, *, device: int | str | None = None) -> None:
        self.device = device
        self._sd: Any = None

    async def resume(self) -> None:
        if self._sd is not None:
            return
        import sounddevice as sd  # pylint: disable=import-outside-toplevel

        try:
            await asyncio.to_thread(sd.query_devices, self.device, "output")
        except (ValueError, sd.PortAudioError) as e:
            raise PlaybackError(f"output device unavailable: {e}") from e
        self._sd = sd

    async def play(self, buffer: np.ndarray, sample_rate_hz: int) -> None:
        if self._sd is None:
            await self.resume()
        sd = self._sd

        try:
            sd.play(buffer, samplerate=sample_rate_hz, device=self.device)
        except sd.PortAudioError as e:
            raise PlaybackError(f"playback start rejected: {e}") from e

        await asyncio.to_thread(sd.wait)

    def stop(self) -> None:
        if self._sd is not None:
            self._sd.stop()
