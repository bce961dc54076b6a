"""Recurring job scheduler running on the asyncio event loop.

Jobs are registered by name and fire either every fixed number of
milliseconds or once a day at a local wall-clock time. Registration,
start and stop are plain synchronous calls; timers are armed on the
running event loop and each tick runs as its own task.

Interval jobs re-arm as soon as their timer fires, without waiting for
the previous tick, so an action slower than its period can overlap with
itself. Daily jobs re-arm only after the tick has finished.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, Union

logger = logging.getLogger(__name__)

JobAction = Callable[[], Union[None, Awaitable[Any]]]
ErrorCallback = Callable[[BaseException], Any]

DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class JobInfo:
    """Read-only snapshot of a registered job."""

    name: str
    interval_ms: int
    is_running: bool
    run_count: int
    last_run: Optional[datetime]
    next_run: Optional[datetime]
    daily_at: Optional[Tuple[int, int]] = None
    max_runs: Optional[int] = None


@dataclass
class _Job:
    name: str
    action: JobAction
    interval_ms: int
    daily_at: Optional[Tuple[int, int]] = None
    max_runs: Optional[int] = None
    on_error: Optional[ErrorCallback] = None
    run_count: int = 0
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    running: bool = False
    in_flight: int = 0
    handle: Optional[asyncio.TimerHandle] = None
    tasks: Set[asyncio.Task] = field(default_factory=set)

    def info(self) -> JobInfo:
        return JobInfo(
            name=self.name,
            interval_ms=self.interval_ms,
            is_running=self.running,
            run_count=self.run_count,
            last_run=self.last_run,
            next_run=self.next_run,
            daily_at=self.daily_at,
            max_runs=self.max_runs,
        )


def next_daily_run(hour: int, minute: int, now: datetime) -> datetime:
    """Next occurrence of hour:minute:00.000 strictly after ``now``.

    If today's target is at or before ``now`` the result is tomorrow.
    """
    scheduled = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if scheduled <= now:
        scheduled += timedelta(days=1)
    return scheduled


class JobScheduler:
    """Named recurring jobs with interval and daily triggers.

    Problems with job management calls (unknown names, double start or
    stop) are logged and ignored so they never break the caller. Errors
    raised by a job's action are logged, passed to its ``on_error``
    callback and never stop the job.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = datetime.now,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        """Initialize scheduler.

        Args:
            clock: Returns the current local time; used for run timestamps
                and daily trigger computation.
            loop: Event loop to arm timers on (defaults to the running loop).
        """
        self._clock = clock
        self._loop = loop
        self._jobs: Dict[str, _Job] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_interval_job(
        self,
        name: str,
        interval_ms: int,
        action: JobAction,
        auto_start: bool = True,
        run_on_init: bool = False,
        max_runs: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None
    ) -> None:
        """Register a job firing every ``interval_ms`` milliseconds.

        An existing job with the same name is stopped and replaced.

        Args:
            name: Unique job name.
            interval_ms: Period in milliseconds.
            action: Callable invoked on each tick; may return an awaitable.
            auto_start: Start the job right after registration.
            run_on_init: Run the action once immediately, before the first period.
            max_runs: Stop the job after this many successful runs.
            on_error: Called with the exception when a tick fails.

        Raises:
            ValueError: If interval_ms or max_runs is not positive.
        """
        if interval_ms <= 0:
            raise ValueError(f"Job interval must be positive, got {interval_ms}ms")
        _check_max_runs(max_runs)

        job = _Job(
            name=name,
            action=action,
            interval_ms=int(interval_ms),
            max_runs=max_runs,
            on_error=on_error,
        )
        self._register(job, auto_start, run_on_init)
        logger.info(f"Job \"{name}\" added with interval: {job.interval_ms}ms")

    def add_daily_job(
        self,
        name: str,
        hour: int,
        minute: int,
        action: JobAction,
        auto_start: bool = True,
        run_on_init: bool = False,
        max_runs: Optional[int] = None,
        on_error: Optional[ErrorCallback] = None
    ) -> None:
        """Register a job firing once a day at local ``hour:minute``.

        Raises:
            ValueError: If hour or minute is out of range.
        """
        if not 0 <= hour <= 23 or not 0 <= minute <= 59:
            raise ValueError(f"Invalid time of day {hour}:{minute}")
        _check_max_runs(max_runs)

        job = _Job(
            name=name,
            action=action,
            interval_ms=DAY_MS,
            daily_at=(hour, minute),
            max_runs=max_runs,
            on_error=on_error,
        )
        self._register(job, auto_start, run_on_init)
        logger.info(f"Daily job \"{name}\" added for {hour:02d}:{minute:02d}")

    def add_seconds_job(self, name: str, seconds: float, action: JobAction, **options: Any) -> None:
        """Register a job firing every ``seconds`` seconds."""
        self.add_interval_job(name, int(seconds * 1000), action, **options)

    def add_minutes_job(self, name: str, minutes: float, action: JobAction, **options: Any) -> None:
        """Register a job firing every ``minutes`` minutes."""
        self.add_interval_job(name, int(minutes * 60 * 1000), action, **options)

    def add_hours_job(self, name: str, hours: float, action: JobAction, **options: Any) -> None:
        """Register a job firing every ``hours`` hours."""
        self.add_interval_job(name, int(hours * 60 * 60 * 1000), action, **options)

    def _register(self, job: _Job, auto_start: bool, run_on_init: bool) -> None:
        if job.name in self._jobs:
            logger.warning(f"Job \"{job.name}\" already exists. Removing old job.")
            self.remove_job(job.name)

        self._jobs[job.name] = job

        if run_on_init:
            self._spawn(job, self._run_tick(job))

        if auto_start:
            self.start_job(job.name)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start_job(self, name: str) -> None:
        """Start a registered job. Starting a running job only logs a warning."""
        job = self._jobs.get(name)
        if not job:
            logger.error(f"Job \"{name}\" not found")
            return

        if job.running:
            logger.warning(f"Job \"{name}\" is already running")
            return

        job.running = True
        try:
            if job.daily_at:
                self._arm_daily(job)
            else:
                self._arm_interval(job)
        except RuntimeError as e:
            job.running = False
            job.next_run = None
            logger.error(f"Job \"{name}\" could not be started: {e}")
            return

        logger.info(f"Job \"{name}\" started")

    def stop_job(self, name: str) -> None:
        """Stop a job's future firings. An in-flight tick runs to completion."""
        job = self._jobs.get(name)
        if not job:
            logger.error(f"Job \"{name}\" not found")
            return

        if not job.running:
            logger.warning(f"Job \"{name}\" is not running")
            return

        self._halt(job)
        logger.info(f"Job \"{name}\" stopped")

    def remove_job(self, name: str) -> None:
        """Stop and unregister a job."""
        job = self._jobs.get(name)
        if not job:
            logger.error(f"Job \"{name}\" not found")
            return

        if job.running:
            self.stop_job(name)
        del self._jobs[name]
        logger.info(f"Job \"{name}\" removed")

    def stop_all(self) -> None:
        """Stop every running job."""
        for name, job in list(self._jobs.items()):
            if job.running:
                self.stop_job(name)

    def remove_all(self) -> None:
        """Stop and unregister every job."""
        for name in list(self._jobs):
            self.remove_job(name)

    async def wait_for_running_ticks(self) -> None:
        """Wait until every in-flight tick has finished."""
        tasks = [task for job in self._jobs.values() for task in job.tasks]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_job(self, name: str) -> Optional[JobInfo]:
        job = self._jobs.get(name)
        return job.info() if job else None

    def get_all_jobs(self) -> List[JobInfo]:
        return [job.info() for job in self._jobs.values()]

    def get_running_jobs_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.running)

    def get_next_run_time(self, name: str) -> Optional[datetime]:
        job = self._jobs.get(name)
        return job.next_run if job else None

    # ------------------------------------------------------------------
    # Timers and ticks
    # ------------------------------------------------------------------

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def _halt(self, job: _Job) -> None:
        if job.handle is not None:
            job.handle.cancel()
            job.handle = None
        job.running = False
        job.next_run = None

    def _arm_interval(self, job: _Job) -> None:
        delay = job.interval_ms / 1000
        job.handle = self._get_loop().call_later(delay, self._on_interval_timer, job)
        job.next_run = self._clock() + timedelta(milliseconds=job.interval_ms)

    def _on_interval_timer(self, job: _Job) -> None:
        job.handle = None
        if not job.running:
            return
        self._arm_interval(job)
        self._spawn(job, self._run_tick(job))

    def _arm_daily(self, job: _Job, after: Optional[datetime] = None) -> None:
        hour, minute = job.daily_at
        now = self._clock()
        target = next_daily_run(hour, minute, max(now, after) if after else now)
        delay = max(0.0, (target - now).total_seconds())
        job.handle = self._get_loop().call_later(delay, self._on_daily_timer, job, target)
        job.next_run = target

    def _on_daily_timer(self, job: _Job, target: datetime) -> None:
        job.handle = None
        if not job.running:
            return
        self._spawn(job, self._run_daily(job, target))

    async def _run_daily(self, job: _Job, target: datetime) -> None:
        await self._run_tick(job)
        if job.running and job.handle is None and self._jobs.get(job.name) is job:
            self._arm_daily(job, after=target)

    def _spawn(self, job: _Job, coro: Awaitable[Any]) -> None:
        try:
            task = self._get_loop().create_task(coro)
        except RuntimeError as e:
            coro.close()
            logger.error(f"Job \"{job.name}\" tick could not be scheduled: {e}")
            return
        job.tasks.add(task)
        task.add_done_callback(job.tasks.discard)

    async def _run_tick(self, job: _Job) -> bool:
        """Run one tick of a job.

        Returns:
            True if the action ran and succeeded.
        """
        if job.max_runs is not None and job.run_count + job.in_flight >= job.max_runs:
            if job.running and job.run_count >= job.max_runs:
                logger.info(f"Job \"{job.name}\" reached max runs ({job.max_runs})")
                self._halt(job)
            return False

        job.in_flight += 1
        try:
            result = job.action()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error executing job \"{job.name}\": {e}", exc_info=True)
            if job.on_error:
                try:
                    job.on_error(e)
                except Exception as callback_error:
                    logger.error(f"Error callback for job \"{job.name}\" failed: {callback_error}")
            return False
        finally:
            job.in_flight -= 1

        job.run_count += 1
        job.last_run = self._clock()
        if job.running and not job.daily_at:
            job.next_run = job.last_run + timedelta(milliseconds=job.interval_ms)

        logger.debug(f"Job \"{job.name}\" executed successfully (run #{job.run_count})")

        if job.max_runs is not None and job.run_count >= job.max_runs and job.running:
            logger.info(f"Job \"{job.name}\" reached max runs ({job.max_runs})")
            self._halt(job)
        return True


def _check_max_runs(max_runs: Optional[int]) -> None:
    if max_runs is not None and max_runs <= 0:
        raise ValueError(f"max_runs must be positive, got {max_runs}")
