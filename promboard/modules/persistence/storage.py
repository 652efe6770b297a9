import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional

from filelock import FileLock

from promboard import consts
from promboard.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Key-value store of serialized documents."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the document stored under ``key``, or None if absent.

        Raises:
            PersistenceError: If the document exists but cannot be read.
        """

    @abstractmethod
    def set(self, key: str, value: str):
        """Store ``value`` under ``key``, replacing any previous document.

        Raises:
            PersistenceError: If the document cannot be written.
        """


class MemoryStorage(Storage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._documents: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    def set(self, key: str, value: str):
        self._documents[key] = value


class JsonFileStorage(Storage):
    """Stores each document as ``<directory>/<key>.json``.

    Writes go to a temporary file that is then renamed over the target, so
    readers never see a partially written document. A lock file per key
    serializes writers across processes.

    Args:
        directory: Directory holding the documents. Created on first write.
            Defaults to ``PROMBOARD_STATE_DIR``.
    """

    def __init__(self, directory: Optional[str] = None):
        self._directory = directory or consts.STATE_DIR

    @property
    def directory(self) -> str:
        return self._directory

    def path_for(self, key: str) -> str:
        return os.path.join(self._directory, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not os.path.exists(path):
            return None
        try:
            with FileLock(path + ".lock"):
                with open(path, "r", encoding="utf-8") as f:
                    return f.read()
        except OSError as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def set(self, key: str, value: str):
        path = self.path_for(key)
        temp_path = path + ".tmp"
        try:
            os.makedirs(self._directory, exist_ok=True)
            with FileLock(path + ".lock"):
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(value)
                # NOTE: os.replace is atomic on both Linux and Windows.
                os.replace(temp_path, path)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e
        logger.debug(f"Wrote {len(value)} bytes to {path}.")
