# cronrunner/core/scheduler/__init__.py
"""
Scheduler module for running cron jobs inside the host process.

Main components:
- Runner: Holds jobs and drives the background scheduling loop
- Tracker: Set of job slots that are currently executing
- Schedule: Cron expression parsing and fire time calculation
- ThreadedRunner: Runner driven from sync code on a loop thread

Example usage:
    from cronrunner.core.scheduler import Runner

    runner = await Runner().add(MyJob()).run()
    ...
    await runner.stop()
"""

from cronrunner.core.scheduler.runner import Runner, RunnerStatus
from cronrunner.core.models.schedule import Schedule
from cronrunner.core.scheduler.threaded import LoopThreadError, ThreadedRunner
from cronrunner.core.scheduler.tracker import Tracker

__all__ = [
    'Runner',
    'RunnerStatus',
    'Schedule',
    'ThreadedRunner',
    'LoopThreadError',
    'Tracker',
]
