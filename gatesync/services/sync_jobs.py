"""Registration of the recurring sync jobs."""

import logging

from gatesync.config import Settings, settings as default_settings
from gatesync.services.connectivity import ConnectivityMonitor
from gatesync.services.scheduler import JobScheduler
from gatesync.services.sync_service import SyncService

logger = logging.getLogger(__name__)

DIAGNOSTIC_SYNC_JOB = "sync-diagnostics"
DIAGNOSTIC_DAILY_SYNC_JOB = "sync-diagnostics-daily"
ACCESS_SYNC_JOB = "sync-access-records"
CONNECTIVITY_PROBE_JOB = "connectivity-probe"


def _log_job_error(job_name: str):
    def on_error(error: BaseException) -> None:
        logger.error(f"Sync job \"{job_name}\" failed: {error}")
    return on_error


def register_sync_jobs(
    scheduler: JobScheduler,
    sync_service: SyncService,
    connectivity: ConnectivityMonitor,
    settings: Settings = default_settings
) -> None:
    """Register the sync and connectivity jobs on a scheduler.

    Args:
        scheduler: Scheduler to register on.
        sync_service: Service whose ticks the jobs run.
        connectivity: Monitor probed by the connectivity job.
        settings: Intervals and switches to use.
    """
    if settings.connectivity_probe_enabled:
        scheduler.add_seconds_job(
            CONNECTIVITY_PROBE_JOB,
            settings.connectivity_probe_interval_seconds,
            connectivity.probe,
            run_on_init=True,
            on_error=_log_job_error(CONNECTIVITY_PROBE_JOB),
        )

    scheduler.add_seconds_job(
        DIAGNOSTIC_SYNC_JOB,
        settings.sync_interval_seconds,
        sync_service.run_sync_tick,
        on_error=_log_job_error(DIAGNOSTIC_SYNC_JOB),
    )

    scheduler.add_seconds_job(
        ACCESS_SYNC_JOB,
        settings.access_sync_interval_seconds,
        sync_service.run_access_sync_tick,
        on_error=_log_job_error(ACCESS_SYNC_JOB),
    )

    if settings.sync_daily_hour is not None:
        scheduler.add_daily_job(
            DIAGNOSTIC_DAILY_SYNC_JOB,
            settings.sync_daily_hour,
            settings.sync_daily_minute,
            sync_service.run_sync_tick,
            on_error=_log_job_error(DIAGNOSTIC_DAILY_SYNC_JOB),
        )

    sync_service.attach(connectivity)
    logger.info(f"Registered {len(scheduler.get_all_jobs())} sync jobs")
