"""Speech output for conversation replies."""

from .base import AbstractSpeaker, Voice, select_voice
from .pyttsx3_backend import Pyttsx3Speaker

__all__ = [
    "AbstractSpeaker",
    "Pyttsx3Speaker",
    "Voice",
    "select_voice",
]
