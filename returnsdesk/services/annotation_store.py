"""
Local Annotation Store.

Review statuses assigned by users to individual returns. They live only
in local durable storage, independent of what the returns service says,
and are stored as one map:

    {"<record id>": {"status": "in_review", "assigned_at": "2026-10-18T09:12:00+00:00"}}

Writes happen immediately on every change. A failed write is logged and
the in-memory copy stays authoritative for the session. Annotations older
than the retention period (7 days by default) are dropped by
``prune_expired``.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from returnsdesk.core.clock import Clock, utcnow
from returnsdesk.core.exceptions import StorageError
from returnsdesk.core.storage import KeyValueStore
from returnsdesk.schemas.annotation import Annotation, ReviewStatus
from returnsdesk.schemas.returns import ReturnRecord

logger = logging.getLogger(__name__)


class AnnotationStore:
    """Durable map of record id -> review status."""

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str = "returnsdesk",
        retention: timedelta = timedelta(days=7),
        clock: Clock = utcnow,
    ):
        self._store = store
        self._key = f"{namespace}:annotations"
        self._retention = retention
        self._clock = clock
        self._annotations: Dict[str, Annotation] = self._read()

    @property
    def key(self) -> str:
        return self._key

    def _read(self) -> Dict[str, Annotation]:
        try:
            raw = self._store.get(self._key)
        except StorageError as e:
            logger.warning(f"[AnnotationStore] Read failed, starting empty: {e.message}")
            return {}
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning("[AnnotationStore] Discarding malformed annotation map")
            self._remove_stored()
            return {}

        annotations: Dict[str, Annotation] = {}
        dropped = 0
        for record_id, value in raw.items():
            if not isinstance(value, dict):
                dropped += 1
                continue
            try:
                annotations[str(record_id)] = Annotation(record_id=str(record_id), **value)
            except (ValidationError, TypeError):
                dropped += 1
        if dropped:
            logger.warning(f"[AnnotationStore] Dropped {dropped} unreadable annotation(s)")
            self._annotations = annotations
            self._persist()
        return annotations

    def _remove_stored(self) -> None:
        try:
            self._store.remove(self._key)
        except StorageError as e:
            logger.warning(f"[AnnotationStore] Failed to remove annotations: {e.message}")

    def _persist(self) -> bool:
        payload = {
            record_id: {
                "status": annotation.status.value,
                "assigned_at": annotation.assigned_at.isoformat(),
            }
            for record_id, annotation in self._annotations.items()
        }
        try:
            self._store.set(self._key, payload)
        except StorageError as e:
            logger.error(f"[AnnotationStore] Failed to persist annotations: {e.message}")
            return False
        return True

    # ==================== Queries ====================

    def get(self, record_id: Union[str, int]) -> Optional[Annotation]:
        return self._annotations.get(str(record_id))

    def status_for(self, record_id: Union[str, int]) -> Optional[ReviewStatus]:
        annotation = self.get(record_id)
        return annotation.status if annotation else None

    def all(self) -> List[Annotation]:
        return list(self._annotations.values())

    def merge(self, records: Iterable[ReturnRecord]) -> Dict[str, ReviewStatus]:
        """Statuses for the given records that have one; others are left out."""
        merged: Dict[str, ReviewStatus] = {}
        for record in records:
            if record.id is None:
                continue
            annotation = self._annotations.get(record.id)
            if annotation is not None:
                merged[record.id] = annotation.status
        return merged

    def __len__(self) -> int:
        return len(self._annotations)

    # ==================== Mutations ====================

    def set_status(self, record_id: Union[str, int], status: Union[ReviewStatus, str]) -> Annotation:
        """Assign status to a record with a fresh timestamp and persist at once."""
        annotation = Annotation(
            record_id=str(record_id),
            status=ReviewStatus(status),
            assigned_at=self._clock(),
        )
        self._annotations[annotation.record_id] = annotation
        self._persist()
        logger.debug(f"[AnnotationStore] {annotation.record_id} -> {annotation.status.value}")
        return annotation

    def remove(self, record_id: Union[str, int]) -> bool:
        if self._annotations.pop(str(record_id), None) is None:
            return False
        self._persist()
        return True

    def prune_expired(self, now: Optional[datetime] = None) -> int:
        """Drop annotations older than the retention period."""
        now = now or self._clock()
        expired = [
            record_id for record_id, annotation in self._annotations.items()
            if now - annotation.assigned_at > self._retention
        ]
        for record_id in expired:
            del self._annotations[record_id]
        if expired:
            self._persist()
            logger.info(f"[AnnotationStore] Pruned {len(expired)} expired annotation(s)")
        return len(expired)

    def clear(self) -> None:
        self._annotations.clear()
        self._remove_stored()
