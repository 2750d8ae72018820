"""Audio capture and processing module."""

from .capture import AudioCapture, CaptureHandle
from .audio_pub import AudioPublisher, LEVEL_TOPIC, STATUS_TOPIC
from .level_meter import LevelMeter, compute_spectrum, peak_level
from .encoder import encode_wav, extension_for, CAPTURE_MIME_TYPE

__all__ = [
    'AudioCapture',
    'CaptureHandle',
    'AudioPublisher',
    'LEVEL_TOPIC',
    'STATUS_TOPIC',
    'LevelMeter',
    'compute_spectrum',
    'peak_level',
    'encode_wav',
    'extension_for',
    'CAPTURE_MIME_TYPE',
]
