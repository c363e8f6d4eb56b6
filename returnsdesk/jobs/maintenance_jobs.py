"""
Maintenance Jobs

Periodic housekeeping for a running ReturnsManager:
- Prune review annotations past their retention period
- Purge cached result pages that are long past their freshness window
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from returnsdesk.services.returns_manager import ReturnsManager

logger = logging.getLogger(__name__)


async def prune_annotations(manager: ReturnsManager) -> Dict[str, Any]:
    """Drop annotations older than the retention period."""
    start_time = datetime.now(timezone.utc)
    removed = manager.prune_annotations()
    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(f"Annotation prune completed: {removed} removed in {duration:.3f}s")
    return {"removed": removed, "remaining": len(manager.annotations)}


async def purge_result_cache(manager: ReturnsManager) -> Dict[str, Any]:
    """Drop cached pages old enough that they would never be shown again."""
    cache = manager.orchestrator.cache
    removed = cache.purge_expired()
    stats = cache.stats()
    if removed:
        logger.info(f"Result cache purge removed {removed} entries ({stats['size']} left)")
    else:
        logger.debug("Result cache purge found nothing to remove")
    return {"removed": removed, **stats}
