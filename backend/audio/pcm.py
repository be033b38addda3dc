"""PCM conversion utilities."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from constants import PCM16_MAX, PCM16_MIN


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; drop the dangling byte
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    return audio_i16.astype(np.float32) / 32768.0


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Quantize float samples in [-1.0, 1.0] to signed 16-bit little-endian.

    Values outside the representable range are clamped to
    [-32768, 32767].
    """
    scaled = np.asarray(samples, dtype=np.float64) * 32768.0
    clipped = np.clip(np.round(scaled), PCM16_MIN, PCM16_MAX)
    return clipped.astype("<i2").tobytes()


def resample_linear(samples: np.ndarray, src_rate_hz: int, dst_rate_hz: int) -> np.ndarray:
    """
    Resample a mono buffer by linear interpolation.

    For output index i the fractional source position is
    p = i * src_rate / dst_rate; with a = x[floor(p)], b = x[floor(p) + 1]
    and f = p - floor(p):

        result[i] = a * (1 - f) + b * f

    The last source sample is held past the end of the input.
    A ratio of 1.0 returns a copy of the input.
    """
    if src_rate_hz <= 0 or dst_rate_hz <= 0:
        raise ValueError("sample rates must be > 0")

    x = np.asarray(samples, dtype=np.float32)
    if src_rate_hz == dst_rate_hz or x.size == 0:
        return x.copy()

    out_len = int(round(x.size * dst_rate_hz / src_rate_hz))
    if out_len <= 0:
        return np.zeros(0, dtype=np.float32)

    positions = np.arange(out_len, dtype=np.float64) * (src_rate_hz / dst_rate_hz)
    lo = np.floor(positions).astype(np.int64)
    lo = np.minimum(lo, x.size - 1)
    hi = np.minimum(lo + 1, x.size - 1)
    frac = (positions - lo).astype(np.float32)
    frac = np.clip(frac, 0.0, 1.0)

    return x[lo] * (1.0 - frac) + x[hi] * frac


def concatenate(buffers: Sequence[np.ndarray]) -> np.ndarray:
    """
    Join mono float buffers end to end, in the given order.

    Returns an empty float32 buffer for an empty sequence.
    """
    if not buffers:
        return np.zeros(0, dtype=np.float32)
    return np.concatenate([np.asarray(b, dtype=np.float32) for b in buffers])
