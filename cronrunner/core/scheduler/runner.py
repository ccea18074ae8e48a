# cronrunner/core/scheduler/runner.py
from __future__ import annotations
import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from cronrunner.core.job import Job
from cronrunner.core.logging import get_logger, job_extra, job_label
from cronrunner.core.models.config import DispatchMode, RunnerConfig
from cronrunner.core.scheduler.tracker import Tracker

logger = get_logger('runner')


@dataclass
class RunnerStatus:
    """Point-in-time view of a Runner, safe to build from any thread."""

    name: str
    running: bool
    working: bool
    jobs_to_run: int
    running_slots: frozenset[int] = field(default_factory=frozenset)
    dispatch_mode: DispatchMode = DispatchMode.SEQUENTIAL

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'running': self.running,
            'working': self.working,
            'jobs_to_run': self.jobs_to_run,
            'running_slots': sorted(self.running_slots),
            'dispatch_mode': self.dispatch_mode.value,
        }


class Runner:
    """
    Holds jobs, starts the scheduling loop and eventually stops it.

    Lifecycle:
        runner = Runner().add(JobA()).add(JobB())
        await runner.run()      # jobs move into the background loop
        ...
        await runner.stop()     # signal + hard cancel

    Jobs can only be added while the runner is not running. Once `run()`
    has started the loop, the job list belongs to the loop and
    `jobs_to_run()` reads 0. After `stop()` the runner is empty again and
    can be given new jobs and started again. The same holds without `stop()`
    once the loop has exited on its own (stop signal or crash), i.e. as soon
    as `is_running()` reads False.
    """

    def __init__(
        self,
        config: Optional[RunnerConfig] = None,
        tracker: Optional[Tracker] = None,
    ) -> None:
        self.config = config or RunnerConfig()
        self.tracker = tracker if tracker is not None else Tracker()
        self._jobs: list[Job] = []
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_signal: Optional[asyncio.Queue[None]] = None
        self._working = threading.Event()
        self._running = False

    @property
    def jobs(self) -> tuple[Job, ...]:
        """Jobs waiting for `run()`. Empty once the runner has started."""
        return tuple(self._jobs)

    def add(self, job: Job) -> Runner:
        """Add a job. Does nothing while the runner is running."""
        self._release_finished_loop()
        if self._running:
            logger.warning(
                f"Runner '{self.config.name}' is running; ignoring job '{job.name}'"
            )
            return self

        if job.readiness_threshold_ms < self.config.poll_interval_ms:
            logger.warning(
                f"Job '{job.name}' readiness threshold ({job.readiness_threshold_ms}ms) "
                f'is shorter than the poll interval ({self.config.poll_interval_ms}ms); '
                'some fire times may be missed'
            )

        self._jobs.append(job)
        return self

    def jobs_to_run(self) -> int:
        """Number of jobs ready to start running."""
        return len(self._jobs)

    async def run(self) -> Runner:
        """Start the scheduling loop. No-op without jobs or when already running."""
        self._release_finished_loop()
        if self._running:
            logger.warning(f"Runner '{self.config.name}' is already running")
            return self
        if not self._jobs:
            logger.debug(f"Runner '{self.config.name}' has no jobs; not starting")
            return self

        jobs, self._jobs = self._jobs, []
        self._working = threading.Event()
        self._stop_signal = asyncio.Queue(maxsize=1)

        loop = _SchedulingLoop(
            jobs=jobs,
            tracker=self.tracker,
            working=self._working,
            stop_signal=self._stop_signal,
            config=self.config,
        )
        self._task = asyncio.create_task(loop.run(), name=f'{self.config.name}-loop')
        self._task.add_done_callback(self._on_loop_done)
        self._running = True

        logger.info(
            f"Runner '{self.config.name}' started with {len(jobs)} job(s), "
            f'dispatch={self.config.dispatch_mode.value}, '
            f'poll_interval={self.config.poll_interval_ms}ms'
        )
        return self

    def request_stop(self) -> bool:
        """
        Ask the loop to exit at the start of its next cycle.

        Returns False when the signal cannot be delivered because the loop
        is not running anymore.
        """
        task, signal = self._task, self._stop_signal
        if task is None or signal is None or task.done():
            logger.error(
                f"Could not send stop signal to runner '{self.config.name}': "
                'scheduling loop is not running'
            )
            return False
        try:
            signal.put_nowait(None)
        except asyncio.QueueFull:
            logger.debug(f"Stop already requested for runner '{self.config.name}'")
        return True

    async def stop(self) -> None:
        """Stop the scheduling loop. In-flight handlers are cancelled."""
        if not self._running:
            return

        task = self._task
        self._running = False
        if task is None:
            return

        self.request_stop()
        task.cancel()

        # Cancellation lands at the next await; give cleanup a bounded window.
        done, _ = await asyncio.wait({task}, timeout=self.config.stop_timeout_seconds)
        if not done:
            logger.warning(
                f"Runner '{self.config.name}' loop did not finish within "
                f'{self.config.stop_timeout_ms}ms after cancellation'
            )

        self._task = None
        self._stop_signal = None
        logger.info(f"Runner '{self.config.name}' stopped")

    def is_running(self) -> bool:
        """True while started and the scheduling loop has not exited or crashed."""
        return self._running and self._task is not None and not self._task.done()

    def is_working(self) -> bool:
        """True while at least one job handler is executing."""
        return self._working.is_set()

    def status(self) -> RunnerStatus:
        return RunnerStatus(
            name=self.config.name,
            running=self.is_running(),
            working=self.is_working(),
            jobs_to_run=self.jobs_to_run(),
            running_slots=self.tracker.snapshot(),
            dispatch_mode=self.config.dispatch_mode,
        )

    def _release_finished_loop(self) -> None:
        """Forget a loop that exited on its own (stop signal or crash)."""
        task = self._task
        if not self._running or task is None or not task.done():
            return
        self._running = False
        self._task = None
        self._stop_signal = None
        logger.debug(f"Runner '{self.config.name}' loop already exited; runner reset")

    def _on_loop_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            logger.debug(f"Runner '{self.config.name}' loop cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Runner '{self.config.name}' loop crashed; scheduling is disabled "
                f'for all jobs: {exc}',
                exc_info=exc,
            )
        else:
            logger.info(f"Runner '{self.config.name}' loop exited")


class _SchedulingLoop:
    """
    The background loop owning the job list for one `Runner.run()`.

    A job's slot is its index in `jobs`; the Tracker is keyed by slot.
    """

    def __init__(
        self,
        jobs: list[Job],
        tracker: Tracker,
        working: threading.Event,
        stop_signal: asyncio.Queue[None],
        config: RunnerConfig,
    ) -> None:
        self.jobs = jobs
        self.tracker = tracker
        self.working = working
        self.stop_signal = stop_signal
        self.config = config
        self._in_flight = 0
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._last_fire: dict[int, datetime] = {}
        self._fault: Optional[BaseException] = None

    async def run(self) -> None:
        logger.info(f"Starting the scheduling loop for '{self.config.name}'")
        try:
            while True:
                if self._stop_requested():
                    logger.info(f"Stopping the scheduling loop for '{self.config.name}'")
                    break
                if self._fault is not None:
                    raise self._fault

                for slot, job in enumerate(self.jobs):
                    if not self._is_eligible(slot, job):
                        continue
                    if self.config.dispatch_mode == DispatchMode.CONCURRENT:
                        self._spawn(slot, job)
                        continue
                    tracked = self._mark_started(slot, job)
                    try:
                        await self._invoke(slot, job)
                    finally:
                        self._mark_finished(slot, tracked)

                await asyncio.sleep(self.config.poll_interval_seconds)
        finally:
            await self._cancel_handlers()

    def _stop_requested(self) -> bool:
        try:
            self.stop_signal.get_nowait()
        except asyncio.QueueEmpty:
            return False
        return True

    def _is_eligible(self, slot: int, job: Job) -> bool:
        now = job.now()
        if not job.should_run(now):
            return False
        if not job.allow_parallel_runs() and self.tracker.running(slot):
            return False

        # Polls closer together than the readiness threshold would otherwise
        # see the same tick twice.
        fire_at = job.next_fire(now)
        if fire_at is not None:
            if self._last_fire.get(slot) == fire_at:
                return False
            self._last_fire[slot] = fire_at
        return True

    def _mark_started(self, slot: int, job: Job) -> bool:
        """Record the run before the handler starts. Returns whether the slot was tracked."""
        tracked = not job.allow_parallel_runs()
        if tracked:
            self.tracker.start(slot)
        self._in_flight += 1
        self.working.set()
        return tracked

    def _mark_finished(self, slot: int, tracked: bool) -> None:
        if tracked:
            self.tracker.stop(slot)
        self._in_flight -= 1
        if self._in_flight == 0:
            self.working.clear()

    async def _invoke(self, slot: int, job: Job) -> None:
        extra = job_extra(slot)
        started = job.now()
        logger.debug(f"START: {job.name} --- {started:%H:%M:%S.%f}", extra=extra)
        try:
            await job.handle()
        except Exception as e:
            if not self.config.catch_handler_errors:
                raise
            logger.error(f"Job '{job.name}' failed: {e}", exc_info=True, extra=extra)
        finally:
            logger.debug(f"FINISH: {job.name} --- {job.now():%H:%M:%S.%f}", extra=extra)

    def _spawn(self, slot: int, job: Job) -> None:
        tracked = self._mark_started(slot, job)
        task = asyncio.create_task(
            self._invoke(slot, job),
            name=f'{self.config.name}-{job_label(slot)}',
        )
        self._handler_tasks.add(task)
        # Done callbacks also fire for tasks cancelled before their first step
        task.add_done_callback(
            lambda t: self._on_handler_done(t, slot, tracked)
        )

    def _on_handler_done(self, task: asyncio.Task[None], slot: int, tracked: bool) -> None:
        self._handler_tasks.discard(task)
        self._mark_finished(slot, tracked)
        if task.cancelled():
            return
        exc = task.exception()
        # Only reachable with catch_handler_errors=False; surfaced by the loop
        if exc is not None and self._fault is None:
            self._fault = exc

    async def _cancel_handlers(self) -> None:
        if not self._handler_tasks:
            return
        pending = list(self._handler_tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
