"""JSON file store tracking which message UIDs were already notified."""

import json
import logging
import os
import tempfile
from typing import List, Tuple, Union

from .exceptions import PersistenceError, StoreLoadError

logger = logging.getLogger(__name__)

# Keep the file small: only the most recent UIDs matter
MAX_ENTRIES = 2000


def _to_json_value(uid: str) -> Union[int, str]:
    """Server UIDs are written as numbers, synthesized ids as strings."""
    return int(uid) if uid.isascii() and uid.isdigit() else uid


class SeenStore:
    """
    Ordered, bounded set of processed message identifiers.

    Every mutation is flushed to disk before the call returns, so an
    identifier reported as seen survives a crash.
    """

    def __init__(self, path: str, uids: List[str] = None, max_entries: int = MAX_ENTRIES):
        self.path = path
        self.max_entries = max_entries
        self._uids: List[str] = list(uids or [])[-max_entries:]
        self._index = set(self._uids)

    @classmethod
    def load(cls, path: str, max_entries: int = MAX_ENTRIES) -> "SeenStore":
        """
        Load the store from disk, creating an empty one if the file is missing.

        Args:
            path: Path to the JSON store file.
            max_entries: Maximum number of identifiers to retain.

        Raises:
            StoreLoadError: If the file exists but cannot be read or is malformed.
        """
        if not os.path.exists(path):
            logger.info(f"No seen-set at {path}, starting empty")
            store = cls(path, max_entries=max_entries)
            store._write()
            return store

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreLoadError(f"Cannot read seen-set {path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreLoadError(f"Seen-set {path} is not a JSON object")
        uids = data.get("processedUids", [])
        if not isinstance(uids, list):
            raise StoreLoadError(f"Seen-set {path}: processedUids is not a list")

        store = cls(path, [str(uid) for uid in uids], max_entries=max_entries)
        logger.info(f"Loaded {len(store)} processed UIDs from {path}")
        return store

    def __len__(self) -> int:
        return len(self._uids)

    def __contains__(self, uid: str) -> bool:
        return self.contains(uid)

    @property
    def uids(self) -> Tuple[str, ...]:
        return tuple(self._uids)

    def contains(self, uid: str) -> bool:
        """Return True if the identifier is currently retained."""
        return str(uid) in self._index

    def mark_seen(self, uid: str) -> None:
        """
        Record an identifier and persist the store.

        Raises:
            PersistenceError: If the store file cannot be written. The
                identifier is still held in memory.
        """
        uid = str(uid)
        if uid in self._index:
            return
        self._uids.append(uid)
        self._index.add(uid)
        if len(self._uids) > self.max_entries:
            evicted = self._uids[:-self.max_entries]
            self._uids = self._uids[-self.max_entries:]
            self._index.difference_update(evicted)
        self._write()

    def clear(self) -> None:
        """Forget every identifier and persist the empty store."""
        self._uids = []
        self._index = set()
        self._write()

    def _write(self) -> None:
        """Atomically replace the store file."""
        payload = {"processedUids": [_to_json_value(uid) for uid in self._uids]}
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".seen-", suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write seen-set {self.path}: {e}") from e
