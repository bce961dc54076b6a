"""Tests for sync job registration."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from gatesync.config import Settings
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.scheduler import JobScheduler
from gatesync.services.sync_jobs import (
    ACCESS_SYNC_JOB,
    CONNECTIVITY_PROBE_JOB,
    DIAGNOSTIC_DAILY_SYNC_JOB,
    DIAGNOSTIC_SYNC_JOB,
    register_sync_jobs,
)
from gatesync.services.sync_service import SyncService


@pytest.fixture
async def scheduler():
    scheduler = JobScheduler()
    yield scheduler
    scheduler.remove_all()
    await scheduler.wait_for_running_ticks()


@pytest.fixture
def sync_service():
    service = MagicMock(spec=SyncService)
    service.run_sync_tick = AsyncMock()
    service.run_access_sync_tick = AsyncMock()
    return service


class TestRegisterSyncJobs:
    """Tests for register_sync_jobs."""

    @pytest.mark.asyncio
    async def test_default_jobs(self, scheduler, sync_service):
        """Interval jobs use the configured periods and the service is attached."""
        connectivity = ConnectivityMonitor()
        settings = Settings(
            sync_interval_seconds=30,
            access_sync_interval_seconds=60,
            connectivity_probe_enabled=False,
        )

        register_sync_jobs(scheduler, sync_service, connectivity, settings)

        names = {job.name for job in scheduler.get_all_jobs()}
        assert names == {DIAGNOSTIC_SYNC_JOB, ACCESS_SYNC_JOB}
        assert scheduler.get_job(DIAGNOSTIC_SYNC_JOB).interval_ms == 30_000
        assert scheduler.get_job(ACCESS_SYNC_JOB).interval_ms == 60_000
        assert scheduler.get_running_jobs_count() == 2
        sync_service.attach.assert_called_once_with(connectivity)

    @pytest.mark.asyncio
    async def test_daily_and_probe_jobs(self, scheduler, sync_service):
        """Optional jobs are added when configured."""
        connectivity = MagicMock(spec=ConnectivityMonitor)
        connectivity.probe = AsyncMock(return_value=True)
        settings = Settings(
            sync_daily_hour=2,
            sync_daily_minute=30,
            connectivity_probe_enabled=True,
            connectivity_probe_interval_seconds=15,
        )

        register_sync_jobs(scheduler, sync_service, connectivity, settings)
        await scheduler.wait_for_running_ticks()

        assert scheduler.get_job(DIAGNOSTIC_DAILY_SYNC_JOB).daily_at == (2, 30)
        assert scheduler.get_job(CONNECTIVITY_PROBE_JOB).interval_ms == 15_000
        # The probe runs once at registration
        connectivity.probe.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_registering_again_replaces_jobs(self, scheduler, sync_service):
        """Registering twice keeps one job per name."""
        settings = Settings(connectivity_probe_enabled=False)
        connectivity = ConnectivityMonitor()

        register_sync_jobs(scheduler, sync_service, connectivity, settings)
        register_sync_jobs(scheduler, sync_service, connectivity, settings)

        assert len(scheduler.get_all_jobs()) == 2
        assert scheduler.get_running_jobs_count() == 2
