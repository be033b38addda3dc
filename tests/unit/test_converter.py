# pylint: disable=missing-module-docstring,missing-function-docstring

import io

import numpy as np
import pytest
import soundfile as sf

from audio.chunks import AudioChunk, AudioEncoding
from audio.converter import AudioFormatConverter
from audio.wav import build_wav, parse_wav_header
from errors import DecodeError


def sine(rate: int, seconds: float, channels: int = 1) -> np.ndarray:
    t = np.arange(int(rate * seconds), dtype=np.float32) / rate
    mono = (0.5 * np.sin(2 * np.pi * 220 * t)).astype(np.float32)
    if channels == 1:
        return mono
    return np.stack([mono] + [np.zeros_like(mono)] * (channels - 1), axis=1)


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_encode_samples_produces_16k_mono_wav() -> None:
    conv = AudioFormatConverter()

    wav = conv.encode_samples(sine(48_000, 1.0), sample_rate_hz=48_000)
    header = parse_wav_header(wav)

    assert header.sample_rate_hz == 16_000
    assert header.channels == 1
    assert header.bits_per_sample == 16
    assert abs(header.data_size // 2 - 16_000) <= 1


def test_encode_samples_keeps_channel_zero() -> None:
    conv = AudioFormatConverter()
    frames = np.zeros((160, 2), dtype=np.float32)
    frames[:, 0] = 0.25
    frames[:, 1] = -0.75

    wav = conv.encode_samples(frames, sample_rate_hz=16_000)
    pcm = np.frombuffer(wav[44:], dtype="<i2")

    assert pcm.size == 160
    assert set(pcm.tolist()) == {8192}


def test_encode_capture_decodes_container() -> None:
    buf = io.BytesIO()
    sf.write(buf, sine(44_100, 0.5, channels=2), 44_100, format="WAV", subtype="PCM_16")

    wav = AudioFormatConverter().encode_capture(buf.getvalue())
    header = parse_wav_header(wav)

    assert header.sample_rate_hz == 16_000
    assert header.channels == 1
    assert abs(header.data_size // 2 - 8_000) <= 1


@pytest.mark.parametrize("payload", [b"", b"not audio at all" * 4])
def test_encode_capture_rejects_undecodable(payload: bytes) -> None:
    with pytest.raises(DecodeError):
        AudioFormatConverter().encode_capture(payload)


# ---------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------

def test_decode_pcm16_chunk_at_playback_rate() -> None:
    pcm = np.array([0, 16384, -16384], dtype="<i2").tobytes()
    chunk = AudioChunk(pcm, AudioEncoding.PCM16, 1, sample_rate_hz=24_000)

    out = AudioFormatConverter().decode_for_playback(chunk)

    np.testing.assert_allclose(out, [0.0, 0.5, -0.5])


def test_decode_pcm16_resamples_other_rates() -> None:
    pcm = np.zeros(16_000, dtype="<i2").tobytes()
    chunk = AudioChunk(pcm, AudioEncoding.PCM16, 1, sample_rate_hz=16_000)

    out = AudioFormatConverter().decode_for_playback(chunk)

    assert abs(out.size - 24_000) <= 1


def test_decode_wav_chunk() -> None:
    pcm = np.full(240, 8192, dtype="<i2").tobytes()
    chunk = AudioChunk(build_wav(pcm, sample_rate_hz=24_000), AudioEncoding.WAV, 1)

    out = AudioFormatConverter().decode_for_playback(chunk)

    assert out.size == 240
    np.testing.assert_allclose(out, 0.25)


@pytest.mark.parametrize(
    "chunk",
    [
        AudioChunk(b"", AudioEncoding.PCM16, 1, 24_000),
        AudioChunk(b"\x01", AudioEncoding.PCM16, 2, 24_000),
        AudioChunk(b"\x1a\x45\xdf\xa3", AudioEncoding.WEBM_OPUS, 3),
    ],
)
def test_undecodable_chunks_raise(chunk: AudioChunk) -> None:
    with pytest.raises(DecodeError):
        AudioFormatConverter().decode_for_playback(chunk)


def test_chunk_tag() -> None:
    assert AudioChunk(b"", AudioEncoding.PCM16, 1, 24_000).tag == "pcm16@24000"
    assert AudioChunk(b"", AudioEncoding.WAV, 1).tag == "wav"
    assert AudioChunk(b"", AudioEncoding.WEBM_OPUS, 1).tag == "webm/opus"
