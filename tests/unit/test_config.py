"""Tests for RunnerConfig validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cronrunner import DispatchMode, RunnerConfig


@pytest.mark.unit
class TestRunnerConfig:
    def test_defaults(self) -> None:
        config = RunnerConfig()

        assert config.poll_interval_ms == 100
        assert config.poll_interval_seconds == pytest.approx(0.1)
        assert config.dispatch_mode == DispatchMode.SEQUENTIAL
        assert config.catch_handler_errors is True
        assert config.stop_timeout_ms == 1_000
        assert config.stop_timeout_seconds == pytest.approx(1.0)
        assert config.name == 'cronrunner'

    def test_dispatch_mode_from_string(self) -> None:
        config = RunnerConfig(dispatch_mode='concurrent')  # type: ignore[arg-type]

        assert config.dispatch_mode is DispatchMode.CONCURRENT

    @pytest.mark.parametrize(
        'kwargs',
        [
            {'poll_interval_ms': 0},
            {'poll_interval_ms': 60_001},
            {'stop_timeout_ms': -1},
            {'name': ''},
            {'dispatch_mode': 'threaded'},
        ],
    )
    def test_invalid_values_are_rejected(self, kwargs: dict[str, object]) -> None:
        with pytest.raises(ValidationError):
            RunnerConfig(**kwargs)  # type: ignore[arg-type]

    def test_frozen(self) -> None:
        config = RunnerConfig()

        with pytest.raises(ValidationError):
            config.poll_interval_ms = 5  # type: ignore[misc]
