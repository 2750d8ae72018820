"""Local persistence for preferences and practice history."""

from .key_value import KeyValueStore
from .credential_store import CredentialStore
from .history_store import SessionHistoryStore

__all__ = [
    "KeyValueStore",
    "CredentialStore",
    "SessionHistoryStore",
]
