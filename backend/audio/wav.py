"""
WAV container helpers.

Canonical 44-byte header layout (all little-endian):

    0   "RIFF"
    4   u32  riff size (file size - 8)
    8   "WAVE"
    12  "fmt "
    16  u32  fmt chunk size (16)
    20  u16  audio format (1 = PCM)
    22  u16  channels
    24  u32  sample rate
    28  u32  byte rate
    32  u16  block align
    34  u16  bits per sample
    36  "data"
    40  u32  data size
    44  PCM bytes

Usage example:

    wav = build_wav(pcm_bytes, sample_rate_hz=16000)
    header = parse_wav_header(wav)
    mime = select_pcm_mime_type(header)
"""

from __future__ import annotations

import base64
import struct
from dataclasses import dataclass

from constants import (
    MIME_PCM_16K,
    MIME_PCM_24K,
    PCM_BITS_PER_SAMPLE,
    PCM_MIME_PREFIX,
    RAW_PCM_DEFAULT_SAMPLE_RATE_HZ,
    WAV_FMT_CHUNK_BYTES,
    WAV_FORMAT_PCM,
    WAV_HEADER_BYTES,
    WAV_OFFSET_BITS_PER_SAMPLE,
    WAV_OFFSET_CHANNELS,
    WAV_OFFSET_SAMPLE_RATE,
    PcmFormat,
)


# -------------------------
# Exceptions
# -------------------------

class WavHeaderError(Exception):
    """
    Raised when a payload starts with "RIFF" but its header fields are
    truncated or inconsistent.

    Callers forwarding audio treat the payload as raw PCM instead.
    """


# -------------------------
# Low-level helpers
# -------------------------

def _read_u16_le(buf: bytes, offset: int) -> int:
    return struct.unpack_from("<H", buf, offset)[0]


def _read_u32_le(buf: bytes, offset: int) -> int:
    return struct.unpack_from("<I", buf, offset)[0]


def is_riff(payload: bytes) -> bool:
    """Return True if the payload carries a RIFF magic."""
    return payload[:4] == b"RIFF"


# -------------------------
# Header model
# -------------------------

@dataclass(frozen=True)
class WavHeader:
    """Fields of interest from a WAV header."""
    channels: int
    sample_rate_hz: int
    bits_per_sample: int
    data_offset: int
    data_size: int


def build_wav(
    pcm_bytes: bytes,
    *,
    sample_rate_hz: int,
    channels: int = 1,
    bits_per_sample: int = PCM_BITS_PER_SAMPLE,
) -> bytes:
    """
    Wrap PCM bytes in a canonical RIFF/WAVE container.
    """
    fmt = PcmFormat(
        sample_rate_hz=sample_rate_hz,
        channels=channels,
        bits_per_sample=bits_per_sample,
    )
    data_size = len(pcm_bytes)

    header = struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        WAV_HEADER_BYTES - 8 + data_size,
        b"WAVE",
        b"fmt ",
        WAV_FMT_CHUNK_BYTES,
        WAV_FORMAT_PCM,
        fmt.channels,
        fmt.sample_rate_hz,
        fmt.byte_rate,
        fmt.block_align,
        fmt.bits_per_sample,
        b"data",
        data_size,
    )
    return header + pcm_bytes


def _find_data_chunk(payload: bytes) -> tuple[int, int]:
    """
    Walk RIFF sub-chunks after the WAVE tag and locate "data".

    Returns (offset of PCM bytes, size clamped to what is present).
    Falls back to the canonical offset when no data chunk is found.
    """
    offset = 12
    while offset + 8 <= len(payload):
        chunk_id = payload[offset:offset + 4]
        chunk_size = _read_u32_le(payload, offset + 4)
        body = offset + 8
        if chunk_id == b"data":
            return body, min(chunk_size, len(payload) - body)
        # Chunks are word aligned
        offset = body + chunk_size + (chunk_size & 1)

    return WAV_HEADER_BYTES, len(payload) - WAV_HEADER_BYTES


def parse_wav_header(payload: bytes) -> WavHeader:
    """
    Parse channels (offset 22), sample rate (24) and bits per sample (34).

    Raises:
        WavHeaderError if the payload is not a RIFF/WAVE container or if the
        header values are inconsistent.
    """
    if len(payload) < WAV_HEADER_BYTES:
        raise WavHeaderError(f"WAV payload too short: {len(payload)} bytes")
    if not is_riff(payload) or payload[8:12] != b"WAVE":
        raise WavHeaderError("missing RIFF/WAVE magic")

    channels = _read_u16_le(payload, WAV_OFFSET_CHANNELS)
    sample_rate_hz = _read_u32_le(payload, WAV_OFFSET_SAMPLE_RATE)
    bits_per_sample = _read_u16_le(payload, WAV_OFFSET_BITS_PER_SAMPLE)

    if channels < 1:
        raise WavHeaderError(f"invalid channel count: {channels}")
    if sample_rate_hz <= 0:
        raise WavHeaderError(f"invalid sample rate: {sample_rate_hz}")
    if bits_per_sample == 0 or bits_per_sample % 8 != 0:
        raise WavHeaderError(f"invalid bits per sample: {bits_per_sample}")

    data_offset, data_size = _find_data_chunk(payload)

    return WavHeader(
        channels=channels,
        sample_rate_hz=sample_rate_hz,
        bits_per_sample=bits_per_sample,
        data_offset=data_offset,
        data_size=max(data_size, 0),
    )


def select_pcm_mime_type(header: WavHeader) -> str:
    """
    Map WAV header fields to the mime tag the model expects.

    Mono 16-bit at 16k/24k maps to the exact tags; anything else gets a
    rate-derived generic tag.
    """
    if header.channels == 1 and header.bits_per_sample == 16:
        if header.sample_rate_hz == 16_000:
            return MIME_PCM_16K
        if header.sample_rate_hz == 24_000:
            return MIME_PCM_24K
    return f"{PCM_MIME_PREFIX}{header.sample_rate_hz}"


# -------------------------
# Model payload preparation
# -------------------------

@dataclass(frozen=True)
class ModelAudioPayload:
    """Audio body and mime tag ready for a model turn."""
    mime_type: str
    data: bytes
    header: WavHeader | None = None

    @property
    def data_b64(self) -> str:
        """Base64 text as carried in inlineData."""
        return base64.b64encode(self.data).decode("ascii")


def prepare_for_model(payload: bytes) -> ModelAudioPayload:
    """
    Turn a client audio frame into an inline-audio part for the model.

    - WAV with a consistent header: PCM body forwarded with the tag derived
      from the header.
    - Anything else (raw PCM, inconsistent header): whole payload forwarded
      as PCM at the default rate.

    Never raises for malformed headers.
    """
    if is_riff(payload):
        try:
            header = parse_wav_header(payload)
        except WavHeaderError:
            header = None

        if header is not None:
            body = payload[header.data_offset:header.data_offset + header.data_size]
            return ModelAudioPayload(
                mime_type=select_pcm_mime_type(header),
                data=body,
                header=header,
            )

    return ModelAudioPayload(
        mime_type=f"{PCM_MIME_PREFIX}{RAW_PCM_DEFAULT_SAMPLE_RATE_HZ}",
        data=payload,
    )
