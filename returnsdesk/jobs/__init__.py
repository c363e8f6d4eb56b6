"""
Background Jobs Module

Handles scheduled maintenance for:
- Review annotation retention
- Result cache purging
"""

from returnsdesk.jobs.scheduler import create_scheduler, start_scheduler, shutdown_scheduler
from returnsdesk.jobs.maintenance_jobs import prune_annotations, purge_result_cache

__all__ = [
    "create_scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "prune_annotations",
    "purge_result_cache",
]
