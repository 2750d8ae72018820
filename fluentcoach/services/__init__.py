"""Services layer for FluentCoach application logic."""

from .practice_service import PracticeService

__all__ = [
    "PracticeService",
]
