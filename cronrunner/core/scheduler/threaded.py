# cronrunner/core/scheduler/threaded.py
from __future__ import annotations
import asyncio
import contextlib
import threading
from concurrent.futures import Future
from typing import Any, Awaitable, Optional
from cronrunner.core.job import Job
from cronrunner.core.logging import get_logger
from cronrunner.core.models.config import RunnerConfig
from cronrunner.core.scheduler.runner import Runner, RunnerStatus


class LoopThreadError(RuntimeError):
    """Infrastructure failure in the sync->async bridge."""


class ThreadedRunner:
    """
    Drive a Runner from synchronous code on a dedicated event loop thread.

    For hosts without a running event loop (WSGI apps, plain scripts):

        runner = ThreadedRunner().add(Heartbeat())
        runner.start()
        ...
        runner.stop()

    Each start() builds a fresh loop thread and each stop() tears it down,
    so the runner can be restarted like Runner itself.
    """

    def __init__(
        self,
        runner: Optional[Runner] = None,
        config: Optional[RunnerConfig] = None,
        join_timeout: float = 2.0,
    ) -> None:
        self.logger = get_logger('threaded')
        self.runner = runner if runner is not None else Runner(config=config)
        self.join_timeout = join_timeout
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._state_lock = threading.RLock()

    def add(self, job: Job) -> ThreadedRunner:
        self.runner.add(job)
        return self

    def start(self) -> None:
        """Start the loop thread and the runner on it. No-op when already started."""
        with self._state_lock:
            if self._loop is not None:
                return
            loop = asyncio.new_event_loop()
            thread = threading.Thread(
                target=loop.run_forever, name='cronrunner-loop', daemon=True,
            )
            try:
                thread.start()
            except Exception as exc:
                loop.close()
                raise LoopThreadError(
                    f'Failed to start loop thread: {type(exc).__name__}: {exc}',
                ) from exc
            self._loop = loop
            self._thread = thread

        self._call(self.runner.run())
        if not self.runner.is_running():
            # Nothing to schedule; don't leave an idle thread behind
            self.logger.debug('Runner did not start; shutting the loop thread down')
            self._shutdown_loop()

    def stop(self) -> None:
        """Stop the runner, then the loop thread."""
        with self._state_lock:
            if self._loop is None:
                return
        self._call(self.runner.stop())
        self._shutdown_loop()

    def is_running(self) -> bool:
        return self.runner.is_running()

    def is_working(self) -> bool:
        return self.runner.is_working()

    def jobs_to_run(self) -> int:
        return self.runner.jobs_to_run()

    def status(self) -> RunnerStatus:
        return self.runner.status()

    def _call(self, coro: Awaitable[Any]) -> Any:
        """Run a coroutine on the loop thread and block until it completes."""
        with self._state_lock:
            loop = self._loop
        if loop is None:
            if asyncio.iscoroutine(coro):
                coro.close()
            raise LoopThreadError('Loop thread is not running')
        try:
            fut: Future[Any] = asyncio.run_coroutine_threadsafe(coro, loop)  # type: ignore[arg-type]
        except Exception as exc:
            # Close the coroutine to avoid "never awaited" RuntimeWarnings.
            if asyncio.iscoroutine(coro):
                with contextlib.suppress(RuntimeError):
                    coro.close()
            raise LoopThreadError(
                f'Failed to schedule coroutine on loop thread: {type(exc).__name__}: {exc}',
            ) from exc
        return fut.result()

    def _shutdown_loop(self) -> None:
        with self._state_lock:
            loop, thread = self._loop, self._thread
            if loop is None:
                return
            loop.call_soon_threadsafe(loop.stop)
            if thread is not None:
                thread.join(timeout=self.join_timeout)
                if thread.is_alive():
                    self.logger.warning(
                        'Loop thread did not stop within timeout; leaving loop open'
                    )
                    return
            loop.close()
            self._loop = None
            self._thread = None
