"""Capacity-bounded practice history persisted to local storage."""

import logging
import threading
import time
from typing import List, Optional

from pydantic import ValidationError

from ..errors import PersistenceFailure
from ..models.analysis import AnalysisResult
from ..models.history import HistoryEntry
from ..models.preferences import Level
from .key_value import KeyValueStore

logger = logging.getLogger(__name__)

HISTORY_KEY = "practice_history"
DEFAULT_CAPACITY = 20


class SessionHistoryStore:
    """Newest-first log of completed analyses.

    The whole collection is re-persisted on every mutation (last writer wins).
    Lookups are linear scans; the collection is capped so that is all it needs.
    """

    def __init__(self, store: KeyValueStore, capacity: int = DEFAULT_CAPACITY):
        """Initialize history store.

        Args:
            store: Backing key-value store
            capacity: Maximum number of entries kept; oldest are evicted first
        """
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.store = store
        self.capacity = capacity
        self._lock = threading.RLock()
        self._entries: List[HistoryEntry] = self._load()
        logger.info(f"SessionHistoryStore loaded {len(self._entries)} entries (capacity {capacity})")

    def _load(self) -> List[HistoryEntry]:
        try:
            raw = self.store.get(HISTORY_KEY, [])
        except PersistenceFailure as e:
            logger.warning(f"History unreadable, starting empty: {e}")
            return []

        if not isinstance(raw, list):
            logger.warning("History has unexpected format, starting empty")
            return []

        entries = []
        for item in raw:
            try:
                entries.append(HistoryEntry.from_dict(item))
            except (KeyError, TypeError, ValueError, ValidationError) as e:
                logger.warning(f"Skipping corrupt history entry: {e}")
        entries.sort(key=lambda entry: entry.id, reverse=True)
        return entries[:self.capacity]

    def _persist(self, entries: List[HistoryEntry]) -> None:
        # Memory is only updated after the write succeeds
        self.store.set(HISTORY_KEY, [entry.to_dict() for entry in entries])
        self._entries = entries

    def next_id(self) -> int:
        """Timestamp-derived id that is strictly greater than every stored id."""
        candidate = int(time.time() * 1000)
        if self._entries and candidate <= self._entries[0].id:
            candidate = self._entries[0].id + 1
        return candidate

    def append(self, entry: HistoryEntry) -> None:
        """Insert ``entry`` at the head, evict overflow and persist.

        Raises:
            PersistenceFailure: If the collection could not be written
        """
        with self._lock:
            entries = [entry] + [e for e in self._entries if e.id != entry.id]
            evicted = entries[self.capacity:]
            if evicted:
                logger.debug(f"Evicted {len(evicted)} old history entries")
            self._persist(entries[:self.capacity])
        logger.info(f"History entry {entry.id} appended ({len(self._entries)} stored)")

    def record(self, transcript: str, analysis: AnalysisResult, level: Level,
               roleplay: str, mode: str = "practice") -> HistoryEntry:
        """Create an entry for a completed analysis and append it."""
        with self._lock:
            entry = HistoryEntry.create(self.next_id(), transcript, analysis, level, roleplay, mode)
            self.append(entry)
        return entry

    def remove(self, entry_id: int) -> bool:
        """Remove one entry by id.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            entries = [e for e in self._entries if e.id != entry_id]
            removed = len(entries) != len(self._entries)
            if removed:
                self._persist(entries)
        if removed:
            logger.info(f"History entry {entry_id} removed")
        else:
            logger.debug(f"History entry {entry_id} not found")
        return removed

    def clear(self) -> None:
        with self._lock:
            self._persist([])
        logger.info("History cleared")

    def list(self) -> List[HistoryEntry]:
        """All entries, newest first."""
        with self._lock:
            return list(self._entries)

    def get(self, entry_id: int) -> Optional[HistoryEntry]:
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
        return None

    def __len__(self) -> int:
        return len(self._entries)
