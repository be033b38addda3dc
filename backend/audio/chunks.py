"""
Audio chunk primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AudioEncoding(str, Enum):
    """Encoding of the bytes carried by an AudioChunk."""

    PCM16 = "pcm16"
    WAV = "wav"
    WEBM_OPUS = "webm/opus"


@dataclass(frozen=True)
class AudioChunk:
    """
    One discrete unit of audio bytes, prior to concatenation.

    data:
        Raw bytes exactly as produced by the capture device or the model
        stream.

    encoding:
        How `data` is encoded. PCM16 chunks are little-endian mono at
        `sample_rate_hz`.

    sequence_num:
        Monotonic arrival sequence number assigned by the receiver.
        Playback order within a flush follows it.

    sample_rate_hz:
        Only meaningful for PCM16; containers carry their own rate.
    """
    data: bytes
    encoding: AudioEncoding
    sequence_num: int
    sample_rate_hz: int | None = None

    @property
    def tag(self) -> str:
        """Encoding tag, e.g. `pcm16@24000`, `wav`."""
        if self.encoding is AudioEncoding.PCM16 and self.sample_rate_hz:
            return f"pcm16@{self.sample_rate_hz}"
        return self.encoding.value

    def __len__(self) -> int:
        return len(self.data)


class SequenceCounter:
    """Hands out monotonically increasing arrival sequence numbers."""

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def next(self) -> int:
        """Return the next sequence number."""
        seq = self._next
        self._next += 1
        return seq
