"""Conversation mode models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .analysis import AnalysisResult


class Role(Enum):
    USER = "user"
    AI = "ai"


@dataclass
class ConversationMessage:
    """A single turn in the roleplay conversation thread."""
    id: int
    role: Role
    content: str
    analysis: Optional[AnalysisResult] = None  # Only set on AI turns
