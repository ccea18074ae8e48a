# cronrunner/core/job.py
from __future__ import annotations
import inspect
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional
from cronrunner.core.defaults import READINESS_THRESHOLD_MS
from cronrunner.core.errors import ErrorCode, job_definition_error
from cronrunner.core.models.schedule import Schedule

JobHandler = Callable[[], Awaitable[Any]]


class Job(ABC):
    """
    A unit of recurring work.

    Subclass it, return a Schedule from `schedule()` and put the work in
    `handle()`. The runner calls `handle()` when the next fire time is at most
    `readiness_threshold_ms` away.

    If `handle()` raises, the runner logs the exception and keeps going
    (unless the runner was configured with catch_handler_errors=False).
    When the runner is stopped, an in-flight `handle()` is cancelled at its
    current await point; release anything it holds in a try/finally.

    Example:
        class Heartbeat(Job):
            def schedule(self) -> Schedule | None:
                return Schedule('0 * * * * *')

            async def handle(self) -> None:
                print(f'alive at {self.now()}')
    """

    readiness_threshold_ms: int = READINESS_THRESHOLD_MS

    @property
    def name(self) -> str:
        return type(self).__name__

    def is_active(self) -> bool:
        """Inactive jobs are never started. Default: always active."""
        return True

    def allow_parallel_runs(self) -> bool:
        """
        Whether a new run may start while a previous one is still running.

        Default False: a scheduled run is skipped while one instance is busy.
        Parallel instances only happen with the concurrent dispatch mode.
        """
        return False

    @abstractmethod
    def schedule(self) -> Optional[Schedule]:
        """Run schedule for the job. None means the job never fires."""

    @abstractmethod
    async def handle(self) -> None:
        """The work to do once the job's fire time is reached."""

    def next_fire(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """The single next fire time after `now`, or None without a schedule."""
        schedule = self.schedule()
        if schedule is None:
            return None
        return schedule.next_after(now if now is not None else self.now())

    def should_run(self, now: Optional[datetime] = None) -> bool:
        """Decide whether the job's next fire time is imminent."""
        if not self.is_active():
            return False

        if now is None:
            now = self.now()
        fire_at = self.next_fire(now)
        if fire_at is None:
            return False

        return fire_at - now <= timedelta(milliseconds=self.readiness_threshold_ms)

    def now(self) -> datetime:
        """Current UTC time."""
        return datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f'<{type(self).__name__} {self.name!r} schedule={self.schedule()!r}>'


class FunctionJob(Job):
    """Job wrapping a plain `async def` function. Built by @cron_job."""

    def __init__(
        self,
        fn: JobHandler,
        schedule: Schedule,
        *,
        name: Optional[str] = None,
        active: bool = True,
        allow_parallel_runs: bool = False,
    ) -> None:
        if not inspect.iscoroutinefunction(fn):
            raise job_definition_error(
                message=f"job handler '{getattr(fn, '__name__', fn)}' is not a coroutine function",
                code=ErrorCode.JOB_INVALID_HANDLER,
                fn=fn,
                notes=[f'got {type(fn).__name__}'],
                help_text='declare the handler with `async def`',
            )
        self.fn = fn
        self._schedule = schedule
        self._name = name or getattr(fn, '__name__', 'job')
        self.active = active
        self.parallel = allow_parallel_runs

    @property
    def name(self) -> str:
        return self._name

    def is_active(self) -> bool:
        return self.active

    def allow_parallel_runs(self) -> bool:
        return self.parallel

    def schedule(self) -> Optional[Schedule]:
        return self._schedule

    async def handle(self) -> None:
        await self.fn()

    async def __call__(self) -> None:
        await self.fn()


def cron_job(
    expression: str,
    *,
    name: Optional[str] = None,
    timezone: str = 'UTC',
    active: bool = True,
    allow_parallel_runs: bool = False,
) -> Callable[[JobHandler], FunctionJob]:
    """
    Turn an `async def` function into a Job.

    The expression is parsed immediately, so a typo fails at import time
    instead of silently never firing.

    Example:
        @cron_job('*/10 * * * * *')
        async def refresh_cache() -> None:
            ...

        runner = Runner().add(refresh_cache)
    """
    schedule = Schedule.parse(expression, timezone=timezone)

    def decorator(fn: JobHandler) -> FunctionJob:
        return FunctionJob(
            fn,
            schedule,
            name=name,
            active=active,
            allow_parallel_runs=allow_parallel_runs,
        )

    return decorator
