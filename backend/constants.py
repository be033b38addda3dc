"""
CONSTANTS
---------
Single source of truth for all behavioral invariants of the relay.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, model ids, prompts) live in config.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

# =============================================================================
# Capture / outbound audio (client -> model)
# =============================================================================

CAPTURE_TARGET_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_CHANNELS: Final[int] = 1
PCM_SAMPLE_WIDTH_BYTES: Final[int] = 2  # signed 16-bit
PCM_BITS_PER_SAMPLE: Final[int] = PCM_SAMPLE_WIDTH_BYTES * 8

PCM16_MIN: Final[int] = -32_768
PCM16_MAX: Final[int] = 32_767

# Browsers and most sound cards capture at 48kHz
CAPTURE_DEVICE_SAMPLE_RATE_HZ_DEFAULT: Final[int] = 48_000

# Raw PCM without a WAV header is assumed to be at this rate
RAW_PCM_DEFAULT_SAMPLE_RATE_HZ: Final[int] = 16_000

# =============================================================================
# Model audio (model -> client)
# =============================================================================

MODEL_OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000

# =============================================================================
# WAV container (canonical 44-byte header)
# =============================================================================

WAV_HEADER_BYTES: Final[int] = 44
WAV_FMT_CHUNK_BYTES: Final[int] = 16
WAV_FORMAT_PCM: Final[int] = 1

WAV_OFFSET_CHANNELS: Final[int] = 22
WAV_OFFSET_SAMPLE_RATE: Final[int] = 24
WAV_OFFSET_BITS_PER_SAMPLE: Final[int] = 34

# =============================================================================
# Mime tags understood by the model
# =============================================================================

PCM_MIME_PREFIX: Final[str] = "audio/pcm;rate="
MIME_PCM_16K: Final[str] = "audio/pcm;rate=16000"
MIME_PCM_24K: Final[str] = "audio/pcm;rate=24000"

# =============================================================================
# Playback buffering
# =============================================================================

PLAYBACK_DEBOUNCE_MS: Final[int] = 50

# =============================================================================
# Model stream
# =============================================================================

GEMINI_WEBSOCKET_HOST: Final[str] = "generativelanguage.googleapis.com"
GEMINI_WEBSOCKET_PATH: Final[str] = (
    "/ws/google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)

RESPONSE_MODALITY_AUDIO: Final[str] = "AUDIO"
MEDIA_RESOLUTION: Final[str] = "MEDIA_RESOLUTION_MEDIUM"

CONTEXT_COMPRESSION_TRIGGER_TOKENS: Final[int] = 25_600
CONTEXT_COMPRESSION_TARGET_TOKENS: Final[int] = 12_800

MODEL_WS_MAX_MESSAGE_BYTES: Final[int] = 2**24

# Bounded wait before an unanswered turn is surfaced as an error
MODEL_RESPONSE_TIMEOUT_S_DEFAULT: Final[float] = 30.0
MODEL_SETUP_TIMEOUT_S_DEFAULT: Final[float] = 10.0

# =============================================================================
# Client <-> server transport
# =============================================================================

JSON_FRAME_FIRST_BYTE: Final[int] = 0x7B  # "{"

STATUS_CONNECTED: Final[str] = "Connected to Gemini Live"
STATUS_SETUP_COMPLETE: Final[str] = "Setup complete"
STATUS_TURN_COMPLETE: Final[str] = "Turn complete"

# =============================================================================
# Convenience bundles
# =============================================================================


@dataclass(frozen=True)
class PcmFormat:
    """
    Immutable bundle describing a linear PCM stream.

    Convenience wrapper for passing format metadata around; it is NOT a
    second source of truth.
    """
    sample_rate_hz: int
    channels: int = 1
    bits_per_sample: int = PCM_BITS_PER_SAMPLE

    @property
    def bytes_per_sample(self) -> int:
        """Return bytes per single-channel sample."""
        return self.bits_per_sample // 8

    @property
    def block_align(self) -> int:
        """Return bytes per multi-channel sample frame."""
        return self.channels * self.bytes_per_sample

    @property
    def byte_rate(self) -> int:
        """Return bytes per second of audio."""
        return self.sample_rate_hz * self.block_align

