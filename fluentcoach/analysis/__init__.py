"""Grammar and fluency analysis for FluentCoach."""

from .analyzer import AnalysisClient, ProxyAnalysisClient, BaseAnalysisClient, parse_analysis, MIN_TEXT_LENGTH
from .chat_engine import ChatCompletionEngine
from .prompt import build_system_prompt, build_user_prompt, build_messages, persona_for

__all__ = [
    "AnalysisClient",
    "ProxyAnalysisClient",
    "BaseAnalysisClient",
    "ChatCompletionEngine",
    "parse_analysis",
    "MIN_TEXT_LENGTH",
    "build_system_prompt",
    "build_user_prompt",
    "build_messages",
    "persona_for",
]
