"""
APScheduler Configuration

Background scheduler for maintenance of a running ReturnsManager.

Jobs:
- prune_annotations     every ANNOTATION_PRUNE_INTERVAL_HOURS
- purge_result_cache    every CACHE_PURGE_INTERVAL_MINUTES
"""

import logging
from typing import Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from returnsdesk.config import Settings, settings as default_settings
from returnsdesk.jobs.maintenance_jobs import prune_annotations, purge_result_cache
from returnsdesk.services.returns_manager import ReturnsManager

logger = logging.getLogger(__name__)

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}


def create_scheduler() -> AsyncIOScheduler:
    """New scheduler with in-memory job store and asyncio executor."""
    return AsyncIOScheduler(
        jobstores={'default': MemoryJobStore()},
        executors={'default': AsyncIOExecutor()},
        job_defaults=job_defaults,
        timezone='UTC',
    )


def register_maintenance_jobs(
    target: AsyncIOScheduler,
    manager: ReturnsManager,
    config: Optional[Settings] = None,
) -> None:
    """Add the maintenance jobs for manager to target."""
    config = config or default_settings

    target.add_job(
        prune_annotations,
        'interval',
        hours=config.ANNOTATION_PRUNE_INTERVAL_HOURS,
        args=[manager],
        id='prune_annotations',
        name='Prune Expired Annotations',
        replace_existing=True,
    )

    target.add_job(
        purge_result_cache,
        'interval',
        minutes=config.CACHE_PURGE_INTERVAL_MINUTES,
        args=[manager],
        id='purge_result_cache',
        name='Purge Result Cache',
        replace_existing=True,
    )


def start_scheduler(
    target: AsyncIOScheduler,
    manager: ReturnsManager,
    config: Optional[Settings] = None,
):
    """Register the maintenance jobs on target and start it."""
    if not target.running:
        register_maintenance_jobs(target, manager, config)
        target.start()
        logger.info("Background job scheduler started")

        for job in target.get_jobs():
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler(target: AsyncIOScheduler):
    """Shutdown the scheduler gracefully."""
    if target.running:
        target.shutdown(wait=False)
        logger.info("Background job scheduler stopped")


def get_job_status(target: AsyncIOScheduler):
    """Get status of all scheduled jobs."""
    jobs = target.get_jobs()
    status = []
    for job in jobs:
        # Jobs added before start() have no next_run_time yet
        next_run = getattr(job, "next_run_time", None)
        status.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": str(next_run) if next_run else None,
            "trigger": str(job.trigger),
        })
    return status
