"""
Audio encoding helpers for transcription backends.

Frames arrive as float32 PCM (mono, 16kHz). Backends want either a 16-bit
WAV file or the raw float32 little-endian bytes.
"""

import base64
import io

import numpy as np
import soundfile as sf

from .aggregator import SAMPLE_RATE


WAV_HEADER_BYTES = 44


def audio_to_wav_bytes(audio: np.ndarray, sample_rate: int = SAMPLE_RATE) -> bytes:
    """
    Convert float32 audio to a mono 16-bit PCM WAV file.

    Samples outside [-1, 1] are clipped before conversion.
    """
    clipped = np.clip(np.asarray(audio, dtype=np.float32), -1.0, 1.0)
    audio_int16 = (clipped * 32767).astype(np.int16)
    buffer = io.BytesIO()
    sf.write(buffer, audio_int16, sample_rate, format="WAV", subtype="PCM_16")
    buffer.seek(0)
    return buffer.getvalue()


def wav_size_for(sample_count: int) -> int:
    """Encoded WAV size in bytes for a mono 16-bit buffer."""
    return WAV_HEADER_BYTES + sample_count * 2


def audio_to_base64_float32(audio: np.ndarray) -> str:
    """Encode samples as base64 of raw float32 little-endian bytes."""
    raw = np.asarray(audio, dtype="<f4").tobytes()
    return base64.b64encode(raw).decode("ascii")


def base64_float32_to_audio(data: str) -> np.ndarray:
    """Inverse of audio_to_base64_float32."""
    return np.frombuffer(base64.b64decode(data), dtype="<f4").astype(np.float32)


def duration_seconds(audio: np.ndarray, sample_rate: int = SAMPLE_RATE) -> float:
    return len(audio) / sample_rate
