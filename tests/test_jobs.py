"""
Tests for jobs/ maintenance tasks and scheduler registration.
"""
import pytest
import pytest_asyncio

from returnsdesk.config import Settings
from returnsdesk.jobs.maintenance_jobs import prune_annotations, purge_result_cache
from returnsdesk.jobs.scheduler import (
    create_scheduler,
    get_job_status,
    register_maintenance_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from returnsdesk.schemas.annotation import ReviewStatus
from returnsdesk.services.returns_manager import build_returns_manager


@pytest.fixture
def config():
    return Settings(
        STORAGE_BACKEND="memory",
        ANNOTATION_PRUNE_INTERVAL_HOURS=6,
        CACHE_PURGE_INTERVAL_MINUTES=5,
    )


@pytest_asyncio.fixture
async def manager(config, store, transport, clock):
    manager = build_returns_manager(config, store=store, transport=transport, clock=clock)
    yield manager
    await manager.close()


class TestMaintenanceJobs:
    @pytest.mark.asyncio
    async def test_prune_annotations_job(self, manager, clock):
        manager.set_review_status("r-1", ReviewStatus.RESOLVED)
        clock.advance(days=6)
        manager.set_review_status("r-2", ReviewStatus.PENDING)
        clock.advance(days=2)

        result = await prune_annotations(manager)
        assert result == {"removed": 1, "remaining": 1}

    @pytest.mark.asyncio
    async def test_purge_result_cache_job(self, manager, clock):
        await manager.start()
        manager.set_account_selection(["acc-1"])
        await manager.wait_idle()
        assert manager.orchestrator.cache.stats()["size"] == 1

        clock.advance(hours=1)
        result = await purge_result_cache(manager)
        assert result["removed"] == 1
        assert result["size"] == 0


class TestScheduler:
    def test_jobs_are_registered_with_configured_intervals(self, config, store, transport, clock):
        manager = build_returns_manager(config, store=store, transport=transport, clock=clock)
        scheduler = create_scheduler()
        register_maintenance_jobs(scheduler, manager, config)

        status = {job["id"]: job for job in get_job_status(scheduler)}
        assert set(status) == {"prune_annotations", "purge_result_cache"}
        assert "6:00:00" in status["prune_annotations"]["trigger"]
        assert "0:05:00" in status["purge_result_cache"]["trigger"]
        assert status["prune_annotations"]["next_run_time"] is None

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, manager, config):
        scheduler = create_scheduler()
        start_scheduler(scheduler, manager, config)
        assert scheduler.running
        assert all(job["next_run_time"] for job in get_job_status(scheduler))

        shutdown_scheduler(scheduler)
        assert not scheduler.running
