"""Credential and preference storage."""

import logging
from typing import Optional

from ..errors import InvalidCredential, PersistenceFailure
from ..models.preferences import Level, Preferences, DEFAULT_ROLEPLAY, normalize_roleplay
from .key_value import KeyValueStore

logger = logging.getLogger(__name__)

API_KEY_KEY = "groq_api_key"
LEVEL_KEY = "app_level"
ROLEPLAY_KEY = "app_roleplay"
VOICE_KEY = "app_voice"


class CredentialStore:
    """Holds the provider API key and the user's practice preferences.

    Each field is its own key-value entry. The store is only written by explicit
    user action; pipeline code receives a ``Preferences`` snapshot instead.
    """

    def __init__(self, store: KeyValueStore, key_prefix: str = "gsk_"):
        """Initialize credential store.

        Args:
            store: Backing key-value store
            key_prefix: Required prefix for provider API keys
        """
        self.store = store
        self.key_prefix = key_prefix

    def validate_api_key(self, api_key: str) -> str:
        """Check the key format by prefix only and return the trimmed key."""
        key = (api_key or "").strip()
        if not key.startswith(self.key_prefix) or len(key) <= len(self.key_prefix):
            raise InvalidCredential(f"API key must start with '{self.key_prefix}'")
        return key

    def load(self) -> Preferences:
        """Read the current preferences.

        Unreadable or invalid entries fall back to their defaults.
        """
        prefs = Preferences()

        try:
            prefs.api_key = self.store.get_str(API_KEY_KEY)
        except PersistenceFailure as e:
            logger.warning(f"Could not read stored API key: {e}")

        try:
            level = self.store.get_str(LEVEL_KEY)
            if level:
                prefs.level = Level.parse(level)
        except (PersistenceFailure, ValueError) as e:
            logger.warning(f"Could not read stored level, using default: {e}")

        try:
            roleplay = self.store.get_str(ROLEPLAY_KEY)
            prefs.roleplay = normalize_roleplay(roleplay) if roleplay else DEFAULT_ROLEPLAY
        except (PersistenceFailure, ValueError) as e:
            logger.warning(f"Could not read stored roleplay, using default: {e}")

        try:
            prefs.preferred_voice_id = self.store.get_str(VOICE_KEY)
        except PersistenceFailure as e:
            logger.warning(f"Could not read stored voice: {e}")

        logger.debug(f"Loaded preferences: key={prefs.masked_key()}, level={prefs.level.value}, "
                     f"roleplay={prefs.roleplay}")
        return prefs

    def save_api_key(self, api_key: str) -> str:
        """Validate and store the API key."""
        key = self.validate_api_key(api_key)
        self.store.set(API_KEY_KEY, key)
        logger.info("API key saved")
        return key

    def clear_api_key(self) -> None:
        self.store.delete(API_KEY_KEY)
        logger.info("API key removed")

    def save(self, prefs: Preferences) -> None:
        """Persist every field of ``prefs``. The API key is validated first."""
        if prefs.has_credential:
            self.save_api_key(prefs.api_key)
        else:
            self.clear_api_key()

        self.store.set(LEVEL_KEY, prefs.level.value)
        self.store.set(ROLEPLAY_KEY, normalize_roleplay(prefs.roleplay))
        if prefs.preferred_voice_id:
            self.store.set(VOICE_KEY, prefs.preferred_voice_id)
        else:
            self.store.delete(VOICE_KEY)
        logger.info(f"Preferences saved: level={prefs.level.value}, roleplay={prefs.roleplay}")

    def has_credential(self) -> bool:
        return self.load().has_credential

    def get_api_key(self) -> Optional[str]:
        return self.load().api_key
