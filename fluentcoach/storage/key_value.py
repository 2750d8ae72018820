"""Durable key-value storage backed by one JSON file per key."""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, List, Optional

from ..errors import PersistenceFailure

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class KeyValueStore:
    """Local key-value store where every key is an independent JSON document.

    Writes go to a temporary file in the same directory and are moved into place
    with ``os.replace``, so a crash mid-write leaves the previous value intact.
    """

    def __init__(self, data_dir: str):
        """Initialize the store.

        Args:
            data_dir: Directory holding one ``<key>.json`` file per key
        """
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"KeyValueStore initialized with data_dir: {self.data_dir}")

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.data_dir / f"{key}.json"

    def get(self, key: str, default: Any = None) -> Any:
        """Read a value.

        Returns:
            Stored value, or ``default`` when the key has never been written

        Raises:
            PersistenceFailure: If the file exists but cannot be read or decoded
        """
        path = self._path_for(key)
        if not path.exists():
            return default

        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: Any) -> None:
        """Write a value, replacing any previous one atomically.

        Raises:
            PersistenceFailure: If the value cannot be serialized or written
        """
        path = self._path_for(key)
        tmp_name = None
        try:
            payload = json.dumps(value, indent=2, ensure_ascii=False)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self.data_dir)
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
            logger.debug(f"Stored key '{key}' ({len(payload)} bytes)")
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceFailure(f"Failed to write '{key}': {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def delete(self, key: str) -> None:
        """Remove a key if present."""
        path = self._path_for(key)
        try:
            path.unlink()
            logger.debug(f"Deleted key '{key}'")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceFailure(f"Failed to delete '{key}': {e}") from e

    def keys(self) -> List[str]:
        """List all stored keys."""
        return sorted(p.stem for p in self.data_dir.glob("*.json"))

    def get_str(self, key: str) -> Optional[str]:
        """Read a value that is expected to be a string, ignoring anything else."""
        value = self.get(key)
        if value is None or isinstance(value, str):
            return value
        logger.warning(f"Ignoring non-string value stored under '{key}'")
        return None
