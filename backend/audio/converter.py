"""
Audio format conversion between capture, network and playback.

Outbound (capture -> network):
    container / raw samples -> channel 0 -> linear resample to 16kHz
    -> PCM16 (clamped) -> canonical WAV

Inbound (network -> device):
    PCM16 chunk at the model rate -> float32 playable buffer

Model-bound tagging of client WAV payloads lives in audio.wav.
"""

from __future__ import annotations

import io

import numpy as np
import soundfile as sf

from audio.chunks import AudioChunk, AudioEncoding
from audio.pcm import float32_to_pcm16le, pcm16le_to_float32, resample_linear
from audio.wav import WavHeaderError, build_wav, is_riff, parse_wav_header
from constants import (
    CAPTURE_TARGET_SAMPLE_RATE_HZ,
    MODEL_OUTPUT_SAMPLE_RATE_HZ,
)
from errors import DecodeError


class AudioFormatConverter:
    """
    Stateless converter; one instance may be shared by a client.

    target_rate_hz:
        Rate of the PCM sent to the server (16kHz for the model).
    playback_rate_hz:
        Rate of model audio and of the buffers handed to the output device.
    """

    def __init__(
        self,
        *,
        target_rate_hz: int = CAPTURE_TARGET_SAMPLE_RATE_HZ,
        playback_rate_hz: int = MODEL_OUTPUT_SAMPLE_RATE_HZ,
    ) -> None:
        self.target_rate_hz = target_rate_hz
        self.playback_rate_hz = playback_rate_hz

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def encode_capture(self, payload: bytes) -> bytes:
        """
        Decode a captured audio container and re-encode it as
        16-bit mono WAV at the target rate.

        Raises:
            DecodeError if the container cannot be decoded.
        """
        if not payload:
            raise DecodeError("empty capture payload")

        try:
            data, sample_rate_hz = sf.read(
                io.BytesIO(payload),
                dtype="float32",
                always_2d=True,
            )
        except (RuntimeError, ValueError, TypeError) as e:
            raise DecodeError(f"cannot decode captured audio: {e}") from e

        return self.encode_samples(data, sample_rate_hz=sample_rate_hz)

    def encode_samples(self, samples: np.ndarray, *, sample_rate_hz: int) -> bytes:
        """
        Encode raw float samples from a capture device.

        `samples` is either mono (n,) or interleaved frames (n, channels);
        only channel 0 is kept.
        """
        arr = np.asarray(samples, dtype=np.float32)
        if arr.ndim == 2:
            arr = arr[:, 0]
        elif arr.ndim != 1:
            raise DecodeError(f"unexpected sample array shape: {arr.shape}")

        resampled = resample_linear(arr, sample_rate_hz, self.target_rate_hz)
        return build_wav(
            float32_to_pcm16le(resampled),
            sample_rate_hz=self.target_rate_hz,
        )

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def decode_for_playback(self, chunk: AudioChunk) -> np.ndarray:
        """
        Convert one received chunk into a float32 buffer at the playback
        rate.

        Raises:
            DecodeError for empty chunks or encodings that cannot be played.
        """
        if not chunk.data:
            raise DecodeError(f"empty chunk seq={chunk.sequence_num}")

        if chunk.encoding is AudioEncoding.PCM16:
            rate = chunk.sample_rate_hz or self.playback_rate_hz
            samples = pcm16le_to_float32(chunk.data)
            if samples.size == 0:
                raise DecodeError(f"chunk seq={chunk.sequence_num} holds no whole sample")
            return resample_linear(samples, rate, self.playback_rate_hz)

        if chunk.encoding is AudioEncoding.WAV and is_riff(chunk.data):
            try:
                header = parse_wav_header(chunk.data)
            except WavHeaderError as e:
                raise DecodeError(str(e)) from e
            if header.bits_per_sample != 16:
                raise DecodeError(
                    f"unsupported bits per sample: {header.bits_per_sample}"
                )
            body = chunk.data[header.data_offset:header.data_offset + header.data_size]
            samples = pcm16le_to_float32(body)
            if header.channels > 1:
                usable = samples.size - samples.size % header.channels
                samples = samples[:usable].reshape(-1, header.channels)[:, 0]
            return resample_linear(samples, header.sample_rate_hz, self.playback_rate_hz)

        raise DecodeError(f"cannot play encoding {chunk.tag}")
