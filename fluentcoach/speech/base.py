"""Abstract base class for speech output backends and voice selection."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

# Tried in order when the preferred voice is not installed
FALLBACK_PATTERNS = (
    re.compile(r"Google US English", re.IGNORECASE),
    re.compile(r"Google UK English", re.IGNORECASE),
    re.compile(r"en-US", re.IGNORECASE),
    re.compile(r"en-", re.IGNORECASE),
)


@dataclass(frozen=True)
class Voice:
    """One installed synthesis voice."""
    id: str
    name: str
    lang: str = ""

    @property
    def is_english(self) -> bool:
        return self.lang.lower().startswith("en")


def normalize_language(raw) -> str:
    """Turn a driver language tag (``b'\\x05en-us'``, ``en_US``) into ``en-US`` form."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    tag = "".join(ch for ch in str(raw or "") if ch.isprintable()).strip().replace("_", "-")
    parts = tag.split("-")
    if len(parts) >= 2 and len(parts[1]) == 2:
        parts[1] = parts[1].upper()
    return "-".join(parts)


def select_voice(voices: Sequence[Voice], preferred_id: Optional[str] = None) -> Optional[Voice]:
    """Pick the preferred voice, else the first English voice by fallback priority.

    Returns:
        The chosen voice, or None when nothing matches (the engine default is used)
    """
    if preferred_id:
        for voice in voices:
            if voice.id == preferred_id:
                return voice
        logger.info(f"Preferred voice '{preferred_id}' not installed, falling back")

    for pattern in FALLBACK_PATTERNS:
        for voice in voices:
            if pattern.search(voice.name) or pattern.search(voice.lang):
                return voice
    return None


class AbstractSpeaker(ABC):
    """Reads conversation replies aloud."""

    service_name = "speaker"

    @abstractmethod
    async def speak(self, text: str, voice_id: Optional[str] = None) -> Optional[Voice]:
        """Speak ``text`` and return once it has been read.

        Args:
            text: Sentence to read
            voice_id: Preferred voice; the fallback chain applies when it is missing

        Returns:
            Voice that was used, or None for the engine default

        Raises:
            SpeechUnavailable: If no engine can be started or speaking fails
        """

    @abstractmethod
    async def list_voices(self) -> List[Voice]:
        """Installed voices, in engine order."""

    async def close(self) -> None:
        """Release the engine."""
