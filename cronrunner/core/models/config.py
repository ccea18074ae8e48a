# cronrunner/core/models/config.py
from __future__ import annotations
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from cronrunner.core.defaults import POLL_INTERVAL_MS, STOP_TIMEOUT_MS


class DispatchMode(str, Enum):
    """How the scheduling loop invokes eligible handlers."""

    # Await each handler inline; a slow handler delays the rest of the cycle.
    SEQUENTIAL = 'sequential'
    # Spawn each handler as its own asyncio task.
    CONCURRENT = 'concurrent'


class RunnerConfig(BaseModel):
    """
    Runner configuration.

    Fields:
        - poll_interval_ms: Sleep between two passes over the job list
        - dispatch_mode: Inline (sequential) or per-handler task (concurrent)
        - catch_handler_errors: Log handler exceptions and keep looping; when
          False a handler exception ends the scheduling loop
        - stop_timeout_ms: How long stop() waits for the cancelled loop
        - name: Label used for the loop task and in log lines
    """

    model_config = ConfigDict(frozen=True)

    poll_interval_ms: int = Field(
        default=POLL_INTERVAL_MS,
        ge=1,
        le=60_000,
        description='Scheduling loop poll interval (1-60000 ms)',
    )
    dispatch_mode: DispatchMode = Field(
        default=DispatchMode.SEQUENTIAL, description='Handler dispatch mode'
    )
    catch_handler_errors: bool = Field(
        default=True, description='Log handler exceptions instead of crashing the loop'
    )
    stop_timeout_ms: int = Field(
        default=STOP_TIMEOUT_MS,
        ge=0,
        le=60_000,
        description='Max wait for the cancelled loop to settle (0-60000 ms)',
    )
    name: str = Field(default='cronrunner', min_length=1, description='Runner label')

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000

    @property
    def stop_timeout_seconds(self) -> float:
        return self.stop_timeout_ms / 1000
