"""Transcription module for FluentCoach."""

from .base import AbstractTranscriber
from .groq_backend import GroqTranscriber, parse_transcription_body
from .proxy_backend import ProxyTranscriber

__all__ = [
    "AbstractTranscriber",
    "GroqTranscriber",
    "ProxyTranscriber",
    "parse_transcription_body",
]
