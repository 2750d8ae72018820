"""Data models for the FluentCoach application."""

from .preferences import Level, Preferences, KNOWN_ROLEPLAYS, DEFAULT_ROLEPLAY, normalize_roleplay
from .audio import AudioBlob, AudioStats, CaptureStatus, LevelFrame
from .analysis import AnalysisResult, GrammarCorrection
from .history import HistoryEntry
from .conversation import ConversationMessage, Role
from .grammar import TenseRule, TENSES

__all__ = [
    "Level",
    "Preferences",
    "KNOWN_ROLEPLAYS",
    "DEFAULT_ROLEPLAY",
    "normalize_roleplay",
    "AudioBlob",
    "AudioStats",
    "CaptureStatus",
    "LevelFrame",
    "AnalysisResult",
    "GrammarCorrection",
    "HistoryEntry",
    "ConversationMessage",
    "Role",
    "TenseRule",
    "TENSES",
]
