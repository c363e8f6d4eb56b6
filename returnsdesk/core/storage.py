"""
Durable key/value storage for the returns desk.

Holds the persisted result snapshot and the local review annotations.
Values are JSON documents; a value that cannot be decoded is treated as
absent and purged instead of failing the caller.

Backends:
1. In-memory (tests, single process)
2. JSON files in a directory (default, survives restarts)
3. Redis (shared between processes)

Usage:
    store = create_store()
    store.set("returnsdesk:snapshot", {"version": 3, ...})
    snapshot = store.get("returnsdesk:snapshot")
    store.remove("returnsdesk:snapshot")
"""
import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import redis

from returnsdesk.config import Settings, settings as default_settings
from returnsdesk.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract durable key/value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None if absent or corrupt."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under key."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete key. Missing keys are ignored."""
        pass


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        raise StorageError(f"Value for '{key}' is not JSON serializable: {e}")


class InMemoryKeyValueStore(KeyValueStore):
    """
    In-memory store for tests and ephemeral sessions.

    Values are kept encoded so callers never share mutable state with
    the store, mirroring what a real backend returns.
    """

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[Storage] Discarding corrupt value for '{key}'")
            self._data.pop(key, None)
            return None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = _encode(key, value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def set_raw(self, key: str, raw: str) -> None:
        """Write an undecoded string, bypassing JSON encoding."""
        self._data[key] = raw


class FileKeyValueStore(KeyValueStore):
    """Stores each key as a JSON file inside a directory."""

    _UNSAFE = re.compile(r"[^A-Za-z0-9._-]")

    def __init__(self, directory: str):
        self._directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self._directory / f"{self._UNSAFE.sub('_', key)}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read '{key}': {e}")
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[Storage] Discarding corrupt file {path}")
            self.remove(key)
            return None

    def set(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        path = self._path(key)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            # Write to a sibling temp file and swap it in so readers never
            # observe a half-written document.
            fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except OSError as e:
            raise StorageError(f"Failed to write '{key}': {e}")

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove '{key}': {e}")


class RedisKeyValueStore(KeyValueStore):
    """Redis backend for deployments with more than one process."""

    def __init__(self, redis_url: str):
        self._redis_url = redis_url
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = redis.Redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._get_client().get(key)
        except redis.RedisError as e:
            raise StorageError(f"Failed to read '{key}': {e}")
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"[Storage] Discarding corrupt redis value for '{key}'")
            self.remove(key)
            return None

    def set(self, key: str, value: Any) -> None:
        payload = _encode(key, value)
        try:
            self._get_client().set(key, payload)
        except redis.RedisError as e:
            raise StorageError(f"Failed to write '{key}': {e}")

    def remove(self, key: str) -> None:
        try:
            self._get_client().delete(key)
        except redis.RedisError as e:
            raise StorageError(f"Failed to remove '{key}': {e}")


def create_store(config: Optional[Settings] = None) -> KeyValueStore:
    """Build the storage backend selected in settings."""
    config = config or default_settings

    if config.STORAGE_BACKEND == "redis":
        if not config.REDIS_URL:
            raise ValueError("REDIS_URL must be set when STORAGE_BACKEND is 'redis'")
        logger.info("Storage initialized with Redis backend")
        return RedisKeyValueStore(config.REDIS_URL)

    if config.STORAGE_BACKEND == "file":
        logger.info(f"Storage initialized with file backend at {config.STORAGE_PATH}")
        return FileKeyValueStore(config.STORAGE_PATH)

    logger.info("Storage initialized with in-memory backend")
    return InMemoryKeyValueStore()
