"""
Persistent Storage Module for the Smriti Client

This module provides the key-value stores that hold the session token,
the cached user, and the device push token across restarts.

- JsonFileStore: durable store backed by a single JSON file
- MemoryStore: process-local store, used for tests and ephemeral runs
"""

import asyncio
import json
import os
import tempfile
import threading
from typing import Optional, Dict, Set

from utils.exceptions import PersistenceError
from utils.logger import get_logger

logger = get_logger(__name__)


class JsonFileStore:
    """Key-value store persisted as a JSON object in one file.

    Each write rewrites the whole file through a temporary file and
    os.replace, so a crash mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str):
        """
        Initialize the store.

        Args:
            path: Location of the JSON file. Parent directories are created on first write.
        """
        self.path = path
        self._lock = threading.Lock()

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Corrupted storage file {self.path}, treating as empty: {e}")
            return {}
        except OSError as e:
            raise PersistenceError(f"Failed to read storage file {self.path}: {e}") from e

        if not isinstance(data, dict):
            logger.warning(f"Storage file {self.path} does not hold an object, treating as empty")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".storage-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to write storage file {self.path}: {e}") from e

    def _get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def _set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def _remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)

    def _clear(self) -> None:
        with self._lock:
            self._write_all({})

    async def get_item(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._get, key)

    async def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise PersistenceError(f"Only strings can be stored, got {type(value).__name__}")
        await asyncio.to_thread(self._set, key, value)

    async def remove_item(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)
        logger.info(f"Cleared storage file {self.path}")


class MemoryStore:
    """In-process key-value store.

    ``fail_on`` names operations ("get", "set", "remove", "clear") that
    should raise PersistenceError, to simulate a broken backend.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None, fail_on: Optional[Set[str]] = None):
        self.data: Dict[str, str] = dict(initial or {})
        self.fail_on: Set[str] = set(fail_on or ())

    def _check(self, operation: str, key: str = "") -> None:
        if operation in self.fail_on:
            raise PersistenceError(f"Simulated {operation} failure for {key or 'store'}")

    async def get_item(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        self._check("get", key)
        return self.data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.sleep(0)
        self._check("set", key)
        if not isinstance(value, str):
            raise PersistenceError(f"Only strings can be stored, got {type(value).__name__}")
        self.data[key] = value

    async def remove_item(self, key: str) -> None:
        await asyncio.sleep(0)
        self._check("remove", key)
        self.data.pop(key, None)

    async def clear(self) -> None:
        await asyncio.sleep(0)
        self._check("clear")
        self.data.clear()
