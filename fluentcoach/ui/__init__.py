"""Terminal user interface for FluentCoach."""

from .practice_screen import (
    PracticeScreen,
    LiveLevelView,
    render_feedback,
    render_grammar_sheet,
    render_history,
    render_level_bars,
    render_message,
    render_voices,
)

__all__ = [
    "PracticeScreen",
    "LiveLevelView",
    "render_feedback",
    "render_grammar_sheet",
    "render_history",
    "render_level_bars",
    "render_message",
    "render_voices",
]
