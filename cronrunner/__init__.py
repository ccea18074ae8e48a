"""cronrunner - in-process cron jobs for long-running asyncio applications"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.job import Job, FunctionJob, cron_job
from .core.models.config import RunnerConfig, DispatchMode
from .core.models.schedule import Schedule
from .core.scheduler import (
    Runner,
    RunnerStatus,
    ThreadedRunner,
    LoopThreadError,
    Tracker,
)
from .core.errors import (
    ErrorCode,
    CronRunnerError,
    ScheduleParseError,
    JobDefinitionError,
    ConfigurationError,
    ValidationReport,
    MultipleValidationErrors,
)

__all__ = [
    # Jobs
    'Job',
    'FunctionJob',
    'cron_job',
    'Schedule',
    # Running
    'Runner',
    'RunnerStatus',
    'RunnerConfig',
    'DispatchMode',
    'ThreadedRunner',
    'LoopThreadError',
    'Tracker',
    # Errors
    'ErrorCode',
    'CronRunnerError',
    'ScheduleParseError',
    'JobDefinitionError',
    'ConfigurationError',
    'ValidationReport',
    'MultipleValidationErrors',
]
