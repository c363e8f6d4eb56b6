# Services module
from returnsdesk.services.cache_service import CacheEntry, ResultCache, build_cache_key
from returnsdesk.services.returns_client import HttpReturnsClient, ReturnsTransport
from returnsdesk.services.fetch_orchestrator import FetchOrchestrator, FetchOutcome
from returnsdesk.services.filter_controller import Debouncer, FilterController
from returnsdesk.services.snapshot_store import SnapshotStore
from returnsdesk.services.annotation_store import AnnotationStore
from returnsdesk.services.hierarchy_service import aggregate, derive_base_key
from returnsdesk.services.returns_manager import ReturnsManager, build_returns_manager

__all__ = [
    "CacheEntry",
    "ResultCache",
    "build_cache_key",
    "HttpReturnsClient",
    "ReturnsTransport",
    "FetchOrchestrator",
    "FetchOutcome",
    "Debouncer",
    "FilterController",
    "SnapshotStore",
    "AnnotationStore",
    "aggregate",
    "derive_base_key",
    # Facade
    "ReturnsManager",
    "build_returns_manager",
]
