"""
Playback queue for model audio chunks.

- Ordered by arrival (sequence number)
- Unbounded, expected small: the debounce flush drains it every few
  tens of milliseconds
- take_all() and clear() are synchronous, so no chunk can arrive between
  "decide" and "empty" on a single event loop
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque

from audio.chunks import AudioChunk, AudioEncoding
from constants import MODEL_OUTPUT_SAMPLE_RATE_HZ, PCM_SAMPLE_WIDTH_BYTES


@dataclass
class QueueCounters:
    """Counters for observability."""
    enqueued: int = 0
    taken: int = 0
    discarded: int = 0


class PlaybackQueue:
    """
    FIFO of pending AudioChunks for the current turn.

    Chunks leave the queue exactly once: either through take_all() (to be
    played) or through clear() (discarded by an interruption).
    """

    def __init__(self) -> None:
        self._chunks: Deque[AudioChunk] = deque()
        self.counters: QueueCounters = QueueCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def append(self, chunk: AudioChunk) -> None:
        """Add a chunk at the tail."""
        self._chunks.append(chunk)
        self.counters.enqueued += 1

    def take_all(self) -> tuple[AudioChunk, ...]:
        """
        Atomically remove and return every pending chunk in arrival order.

        Returns an empty tuple when nothing is pending.
        """
        if not self._chunks:
            return ()
        taken = tuple(sorted(self._chunks, key=lambda c: c.sequence_num))
        self._chunks.clear()
        self.counters.taken += len(taken)
        return taken

    def clear(self) -> int:
        """
        Discard every pending chunk.

        Returns the number of chunks discarded.
        """
        dropped = len(self._chunks)
        self._chunks.clear()
        self.counters.discarded += dropped
        return dropped

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._chunks)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._chunks

    def depth_seconds(self) -> float:
        """
        Pending audio duration, counting PCM16 chunks only.
        """
        total = 0.0
        for chunk in self._chunks:
            if chunk.encoding is AudioEncoding.PCM16:
                rate = chunk.sample_rate_hz or MODEL_OUTPUT_SAMPLE_RATE_HZ
                total += len(chunk.data) / (rate * PCM_SAMPLE_WIDTH_BYTES)
        return total

    def snapshot(self) -> dict[str, float | int]:
        """Lightweight snapshot for logging."""
        return {
            "chunks": len(self._chunks),
            "depth_s": round(self.depth_seconds(), 3),
            "enqueued": self.counters.enqueued,
            "taken": self.counters.taken,
            "discarded": self.counters.discarded,
        }
