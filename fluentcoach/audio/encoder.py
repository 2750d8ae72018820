"""Encoding of captured PCM fragments into an uploadable blob."""

import io
import wave
from typing import Iterable

from ..models.audio import AudioBlob

CAPTURE_MIME_TYPE = "audio/wav"
SAMPLE_WIDTH_BYTES = 2  # 16-bit signed PCM

# Extensions the speech-to-text endpoint recognises, keyed by content type
MIME_EXTENSIONS = {
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/webm": "webm",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/mp4": "m4a",
    "audio/flac": "flac",
}


def extension_for(mime_type: str) -> str:
    """File extension for ``mime_type``, ignoring codec parameters."""
    base = (mime_type or "").split(";", 1)[0].strip().lower()
    return MIME_EXTENSIONS.get(base, "webm")


def encode_wav(chunks: Iterable[bytes], sample_rate: int, channels: int) -> AudioBlob:
    """Concatenate PCM fragments in order and wrap them in a WAV container."""
    pcm = b"".join(chunks)
    buffer = io.BytesIO()
    with wave.open(buffer, 'wb') as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(SAMPLE_WIDTH_BYTES)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)

    bytes_per_second = sample_rate * channels * SAMPLE_WIDTH_BYTES
    return AudioBlob(
        data=buffer.getvalue(),
        mime_type=CAPTURE_MIME_TYPE,
        sample_rate=sample_rate,
        channels=channels,
        duration_seconds=len(pcm) / bytes_per_second if bytes_per_second else 0.0,
    )
