"""
Debounced playback of streamed model audio.

Model audio arrives as many small PCM chunks at irregular intervals.
Playing each on its own produces clicks and gaps, so chunks are batched:

- every new chunk re-arms a short debounce timer
- when the timer fires and nothing is playing, all pending chunks are taken
  in one step, decoded, concatenated in arrival order and played as one
  buffer
- when that playback ends and more chunks arrived meanwhile, the next batch
  is flushed right away

interrupt() discards everything pending and stops the device immediately,
whatever the timer or playback state. A batch that was taken before an
interrupt never reaches the device afterwards (generation check).
"""

from __future__ import annotations

import asyncio
from typing import Callable

import numpy as np

from audio.chunks import AudioChunk, AudioEncoding, SequenceCounter
from audio.converter import AudioFormatConverter
from audio.pcm import concatenate
from audio.queues import PlaybackQueue
from client.devices import AudioOutput
from constants import MODEL_OUTPUT_SAMPLE_RATE_HZ, PLAYBACK_DEBOUNCE_MS
from errors import DecodeError, PlaybackError
from observability.logger import log_event, now_ms
from observability.metrics import timed


class AudioPlaybackBuffer:
    """
    One buffer per client. Must be used from a single event loop.

    on_drained:
        Called when a playback ends with nothing pending and no flush
        scheduled. Not called after interrupt().
    """

    def __init__(
        self,
        output: AudioOutput,
        *,
        converter: AudioFormatConverter | None = None,
        debounce_ms: int = PLAYBACK_DEBOUNCE_MS,
        sample_rate_hz: int = MODEL_OUTPUT_SAMPLE_RATE_HZ,
        on_drained: Callable[[], None] | None = None,
    ) -> None:
        self._output = output
        self._converter = converter or AudioFormatConverter(playback_rate_hz=sample_rate_hz)
        self._debounce_s = debounce_ms / 1000.0
        self._sample_rate_hz = sample_rate_hz
        self._on_drained = on_drained

        self._queue = PlaybackQueue()
        self._sequence = SequenceCounter()
        self._timer: asyncio.TimerHandle | None = None
        self._play_task: asyncio.Task[None] | None = None
        self._playing = False
        self._generation = 0
        self._device_ready = False

        self.play_calls = 0
        self.interrupts = 0

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def on_chunk(self, pcm: bytes) -> AudioChunk:
        """Queue one PCM16 chunk and re-arm the debounce timer."""
        chunk = AudioChunk(
            data=pcm,
            encoding=AudioEncoding.PCM16,
            sequence_num=self._sequence.next(),
            sample_rate_hz=self._sample_rate_hz,
        )
        self._queue.append(chunk)
        self._arm_timer()
        return chunk

    def _arm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_s, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        if self._playing:
            # The running playback flushes again when it ends
            return
        self._start_flush()

    # ------------------------------------------------------------------
    # Flush / play
    # ------------------------------------------------------------------

    def _start_flush(self) -> None:
        """Take every pending chunk and start playing it. No-op when empty."""
        chunks = self._queue.take_all()
        if not chunks:
            return
        self._playing = True
        self._play_task = asyncio.create_task(self._play_batch(chunks, self._generation))

    async def _play_batch(self, chunks: tuple[AudioChunk, ...], generation: int) -> None:
        try:
            buffers: list[np.ndarray] = []
            for chunk in chunks:
                try:
                    buffers.append(self._converter.decode_for_playback(chunk))
                except DecodeError as e:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "PLAYBACK_CHUNK_DROPPED",
                        "level": "WARNING",
                        "sequence_num": chunk.sequence_num,
                        "error": str(e),
                    })

            if not buffers:
                log_event({
                    "ts_ms": now_ms(),
                    "event_type": "PLAYBACK_SKIPPED",
                    "level": "WARNING",
                    "reason": "no_valid_chunks",
                    "chunks": len(chunks),
                })
                return

            segment = concatenate(buffers)

            if not self._device_ready:
                await self._output.resume()
                self._device_ready = True

            if generation != self._generation:
                return

            self.play_calls += 1
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PLAYBACK_STARTED",
                "level": "DEBUG",
                "chunks": len(buffers),
                "first_seq": chunks[0].sequence_num,
                "last_seq": chunks[-1].sequence_num,
                "samples": int(segment.size),
            })
            with timed("playback_segment", details={"samples": int(segment.size)}):
                await self._output.play(segment, self._sample_rate_hz)

        except PlaybackError as e:
            self._device_ready = False
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PLAYBACK_REJECTED",
                "level": "WARNING",
                "error": str(e),
            })

        finally:
            if generation == self._generation:
                self._finish_batch()

    def _finish_batch(self) -> None:
        self._playing = False
        self._play_task = None
        if not self._queue.is_empty():
            self._start_flush()
        elif self._timer is None and self._on_drained is not None:
            self._on_drained()

    # ------------------------------------------------------------------
    # Interruption
    # ------------------------------------------------------------------

    def interrupt(self) -> int:
        """
        Discard pending chunks and stop output now.

        Synchronous: when this returns nothing queued before the call can
        reach the device. Returns the number of discarded chunks.
        """
        self._generation += 1
        self.interrupts += 1

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        dropped = self._queue.clear()
        was_playing = self._playing
        self._playing = False

        task = self._play_task
        self._play_task = None

        self._output.stop()
        if task is not None and not task.done():
            task.cancel()

        log_event({
            "ts_ms": now_ms(),
            "event_type": "PLAYBACK_INTERRUPTED",
            "chunks_dropped": dropped,
            "was_playing": was_playing,
        })
        return dropped

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def pending(self) -> int:
        """Chunks waiting for the next flush."""
        return len(self._queue)

    @property
    def flush_scheduled(self) -> bool:
        return self._timer is not None

    def snapshot(self) -> dict[str, float | int | bool]:
        return {
            **self._queue.snapshot(),
            "playing": self._playing,
            "play_calls": self.play_calls,
            "interrupts": self.interrupts,
        }
