"""
Persistent Snapshot Store.

Keeps a copy of the last good returns page together with the filters,
page and account selection that produced it, so a new session can show
data before its first request completes.

A stored snapshot is used only when its version matches SNAPSHOT_VERSION
and it is younger than the TTL (60 minutes by default). Anything else,
including data that fails to parse, is erased and reported as absent.
"""

import logging
from datetime import timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from returnsdesk.core.clock import Clock, utcnow
from returnsdesk.core.exceptions import StorageError
from returnsdesk.core.storage import KeyValueStore
from returnsdesk.schemas.snapshot import SNAPSHOT_VERSION, PersistedSnapshot

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = frozenset({
    "records",
    "total",
    "current_page",
    "filters",
    "account_selection",
})


class SnapshotStore:
    """Versioned, TTL-bound snapshot of the last successful result."""

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str = "returnsdesk",
        ttl: timedelta = timedelta(minutes=60),
        version: int = SNAPSHOT_VERSION,
        clock: Clock = utcnow,
    ):
        self._store = store
        self._key = f"{namespace}:snapshot"
        self._ttl = ttl
        self._version = version
        self._clock = clock

    @property
    def key(self) -> str:
        return self._key

    def _read_raw(self) -> Optional[Dict[str, Any]]:
        try:
            raw = self._store.get(self._key)
        except StorageError as e:
            logger.warning(f"[SnapshotStore] Read failed, ignoring snapshot: {e.message}")
            return None
        if raw is not None and not isinstance(raw, dict):
            logger.warning("[SnapshotStore] Discarding malformed snapshot")
            self._erase()
            return None
        return raw

    def _erase(self) -> None:
        try:
            self._store.remove(self._key)
        except StorageError as e:
            logger.warning(f"[SnapshotStore] Failed to erase snapshot: {e.message}")

    def _parse(self, raw: Dict[str, Any]) -> Optional[PersistedSnapshot]:
        try:
            return PersistedSnapshot.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[SnapshotStore] Discarding unreadable snapshot: {e.error_count()} error(s)")
            return None

    def _is_usable(self, snapshot: PersistedSnapshot) -> bool:
        if snapshot.version != self._version:
            logger.info(
                f"[SnapshotStore] Snapshot version {snapshot.version} != {self._version}, discarding"
            )
            return False
        timestamp = snapshot.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        if self._clock() - timestamp >= self._ttl:
            logger.info("[SnapshotStore] Snapshot expired, discarding")
            return False
        return True

    def load(self) -> Optional[PersistedSnapshot]:
        """Return the snapshot if it is current, otherwise erase it and return None."""
        raw = self._read_raw()
        if raw is None:
            return None
        snapshot = self._parse(raw)
        if snapshot is None or not self._is_usable(snapshot):
            self._erase()
            return None
        return snapshot

    def save(self, **fields: Any) -> bool:
        """
        Merge fields into the stored snapshot, stamping version and time.

        Unknown field names raise ValueError. Storage failures are logged and
        reported by returning False; they never raise.
        """
        unknown = set(fields) - SNAPSHOT_FIELDS
        if unknown:
            raise ValueError(f"Unknown snapshot fields: {sorted(unknown)}")

        current = self.load()
        base: Dict[str, Any] = current.model_dump() if current else {}
        base.update(fields)
        base["version"] = self._version
        base["timestamp"] = self._clock()

        try:
            snapshot = PersistedSnapshot.model_validate(base)
        except ValidationError as e:
            logger.error(f"[SnapshotStore] Refusing to save invalid snapshot: {e.error_count()} error(s)")
            return False

        try:
            self._store.set(self._key, snapshot.model_dump(mode="json"))
        except StorageError as e:
            logger.error(f"[SnapshotStore] Failed to persist snapshot: {e.message}")
            return False
        return True

    def clear(self) -> None:
        self._erase()
