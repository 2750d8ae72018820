"""Credential and preference models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class Level(Enum):
    """Student proficiency level used to calibrate feedback."""
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"

    @classmethod
    def parse(cls, value: Union[str, "Level"]) -> "Level":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(level.value for level in cls)
            raise ValueError(f"Unknown level '{value}' (expected one of: {valid})")


# Built-in roleplay scenarios; any other identifier is treated as a custom one.
KNOWN_ROLEPLAYS = ("general", "restaurant", "interview", "travel", "medical")
DEFAULT_ROLEPLAY = "general"


def normalize_roleplay(value: Optional[str]) -> str:
    """Lower-case and validate a roleplay identifier."""
    roleplay = (value or "").strip().lower()
    if not roleplay:
        raise ValueError("Roleplay scenario must not be empty")
    return roleplay


@dataclass
class Preferences:
    """Provider credential plus the user's practice preferences."""
    api_key: Optional[str] = None
    level: Level = Level.INTERMEDIATE
    roleplay: str = DEFAULT_ROLEPLAY
    preferred_voice_id: Optional[str] = None  # Platform voice catalog id, not portable

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def masked_key(self) -> str:
        """Key form that is safe to print or log."""
        if not self.has_credential:
            return "<not set>"
        key = self.api_key.strip()
        if len(key) <= 8:
            return "****"
        return f"{key[:4]}…{key[-4:]}"
