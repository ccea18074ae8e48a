"""Tests for the cronrunner command line."""

from __future__ import annotations

import asyncio
import logging
import textwrap
from datetime import datetime
from pathlib import Path
from typing import Iterator
from unittest.mock import patch

import pytest

from cronrunner import ConfigurationError, Runner, RunnerConfig
from cronrunner.core import cli
from cronrunner.core.errors import ErrorCode
from cronrunner.core.logging import apply_level
from tests.jobs import AlwaysReadyJob

RUNNER_MODULE = textwrap.dedent(
    """
    from cronrunner import Runner, RunnerConfig, cron_job

    @cron_job('* * * * * *')
    async def tick() -> None:
        pass

    runner = Runner(config=RunnerConfig(name='from-file')).add(tick)
    """
)


@pytest.fixture(autouse=True)
def _restore_log_level() -> Iterator[None]:
    yield
    apply_level(logging.INFO)


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write(directory: Path, name: str, source: str) -> Path:
    path = directory / name
    path.write_text(textwrap.dedent(source))
    return path


# =============================================================================
# Locator parsing
# =============================================================================


@pytest.mark.unit
class TestLocator:
    @pytest.mark.parametrize(
        'locator, expected',
        [
            ('app.jobs:runner', ('app.jobs', 'runner')),
            ('app.jobs', ('app.jobs', None)),
            ('/path/to/jobs.py:runner', ('/path/to/jobs.py', 'runner')),
        ],
    )
    def test_parse_locator(self, locator: str, expected: tuple[str, str | None]) -> None:
        assert cli._parse_locator(locator) == expected

    @pytest.mark.parametrize(
        'path, expected',
        [('jobs.py', True), ('app/jobs', True), ('app.jobs', False)],
    )
    def test_is_file_path(self, path: str, expected: bool) -> None:
        assert cli._is_file_path(path) is expected

    def test_missing_module_argument(self) -> None:
        args = cli.build_parser().parse_args(['run'])

        with pytest.raises(ConfigurationError) as exc_info:
            cli._resolve_module_argument(args)

        assert exc_info.value.code == ErrorCode.CLI_INVALID_ARGS

    def test_module_flag_and_positional(self) -> None:
        parser = cli.build_parser()

        assert cli._resolve_module_argument(parser.parse_args(['run', '-m', 'a.b:r'])) == 'a.b:r'
        assert cli._resolve_module_argument(parser.parse_args(['run', 'a.b'])) == 'a.b'


# =============================================================================
# Runner discovery
# =============================================================================


@pytest.mark.unit
class TestDiscoverRunner:
    def test_explicit_attribute_in_file(self, project_dir: Path) -> None:
        path = _write(project_dir, 'jobs_explicit.py', RUNNER_MODULE)

        runner, var_name, _module_name = cli.discover_runner(f'{path}:runner')

        assert isinstance(runner, Runner)
        assert var_name == 'runner'
        assert runner.config.name == 'from-file'
        assert runner.jobs_to_run() == 1

    def test_auto_discovery_without_py_suffix(self, project_dir: Path) -> None:
        _write(project_dir, 'jobs_auto.py', RUNNER_MODULE)

        runner, var_name, _module_name = cli.discover_runner('./jobs_auto')

        assert var_name == 'runner'
        assert runner.config.name == 'from-file'

    def test_threaded_runner_is_unwrapped(self, project_dir: Path) -> None:
        path = _write(
            project_dir,
            'jobs_threaded.py',
            """
            from cronrunner import ThreadedRunner
            service = ThreadedRunner()
            """,
        )

        runner, var_name, _module_name = cli.discover_runner(str(path))

        assert isinstance(runner, Runner)
        assert var_name == 'service'

    def test_dotted_module_path(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(project_dir, 'dotted_jobs_mod.py', RUNNER_MODULE)
        monkeypatch.syspath_prepend(str(project_dir))

        runner, var_name, module_name = cli.discover_runner('dotted_jobs_mod:runner')

        assert var_name == 'runner'
        assert module_name == 'dotted_jobs_mod'
        assert runner.config.name == 'from-file'

    @pytest.mark.parametrize(
        'source, locator_suffix, fragment',
        [
            ('from cronrunner import Runner\na = Runner()\nb = Runner()\n', '', 'multiple'),
            ('value = 3\n', '', 'no Runner instance'),
            ('value = 3\n', ':value', 'is not a Runner'),
            ('value = 3\n', ':missing', 'has no attribute'),
        ],
    )
    def test_invalid_locators(
        self,
        project_dir: Path,
        source: str,
        locator_suffix: str,
        fragment: str,
    ) -> None:
        path = _write(project_dir, 'bad.py', source)

        with pytest.raises(ConfigurationError) as exc_info:
            cli.discover_runner(f'{path}{locator_suffix}')

        assert exc_info.value.code == ErrorCode.CLI_INVALID_LOCATOR
        assert fragment in exc_info.value.message

    def test_missing_dotted_module(self, project_dir: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            cli.discover_runner('definitely_not_a_module_xyz:runner')

        assert exc_info.value.code == ErrorCode.CLI_INVALID_LOCATOR

    def test_missing_file(self, project_dir: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            cli.discover_runner(str(project_dir / 'nope.py'))

        assert 'not found' in exc_info.value.message


# =============================================================================
# Commands
# =============================================================================


@pytest.mark.unit
class TestNextCommand:
    def test_prints_upcoming_fire_times(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = cli.build_parser().parse_args(['next', '1/5 * * * * *', '-n', '3'])

        cli.next_command(args)

        lines = capsys.readouterr().out.strip().splitlines()
        fire_times = [datetime.fromisoformat(line) for line in lines]
        assert len(fire_times) == 3
        assert all(fire_at.second % 5 == 1 for fire_at in fire_times)
        assert all(a < b for a, b in zip(fire_times, fire_times[1:]))

    def test_timezone_option(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = cli.build_parser().parse_args(
            ['next', '0 0 12 * * *', '--timezone', 'Asia/Tokyo', '--count', '1']
        )

        cli.next_command(args)

        fire_at = datetime.fromisoformat(capsys.readouterr().out.strip())
        # Noon in Tokyo is 03:00 UTC
        assert (fire_at.hour, fire_at.minute) == (3, 0)

    def test_invalid_expression_exits(self) -> None:
        args = cli.build_parser().parse_args(['next', '* * *'])

        with patch.object(cli.get_logger('cli'), 'error') as mock_error:
            with pytest.raises(SystemExit) as exc_info:
                cli.next_command(args)

        assert exc_info.value.code == 1
        assert 'E100' in mock_error.call_args[0][0]

    def test_count_must_be_positive(self) -> None:
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(['next', '* * * * * *', '-n', '0'])


@pytest.mark.unit
class TestRunCommand:
    def test_runs_for_duration(self, project_dir: Path) -> None:
        path = _write(project_dir, 'jobs_run.py', RUNNER_MODULE)
        args = cli.build_parser().parse_args(
            ['run', f'{path}:runner', '--duration', '0.3', '--no-banner']
        )

        cli.run_command(args)

    def test_prints_banner(self, project_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        path = _write(project_dir, 'jobs_banner.py', RUNNER_MODULE)
        args = cli.build_parser().parse_args(['run', f'{path}:runner', '--duration', '0.2'])

        cli.run_command(args)

        out = capsys.readouterr().out
        assert 'jobs' in out
        assert 'from-file' in out
        assert '1. tick' in out

    def test_runner_without_jobs_exits(self, project_dir: Path) -> None:
        path = _write(project_dir, 'jobs_empty.py', 'from cronrunner import Runner\nrunner = Runner()\n')
        args = cli.build_parser().parse_args(['run', f'{path}:runner', '--no-banner'])

        with pytest.raises(SystemExit) as exc_info:
            cli.run_command(args)

        assert exc_info.value.code == 1

    def test_bad_locator_exits(self, project_dir: Path) -> None:
        args = cli.build_parser().parse_args(['run', 'nowhere_module_abc:runner'])

        with pytest.raises(SystemExit) as exc_info:
            cli.run_command(args)

        assert exc_info.value.code == 1

    def test_loglevel_is_applied(self, project_dir: Path) -> None:
        path = _write(project_dir, 'jobs_debug.py', RUNNER_MODULE)
        args = cli.build_parser().parse_args(
            ['run', f'{path}:runner', '--duration', '0.1', '--no-banner', '--loglevel', 'warning']
        )

        cli.run_command(args)

        assert cli.get_logger('runner').level == logging.WARNING

    def test_main_without_command_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr('sys.argv', ['cronrunner'])

        with pytest.raises(SystemExit) as exc_info:
            cli.main()

        assert exc_info.value.code == 1


@pytest.mark.unit
@pytest.mark.asyncio(loop_scope='function')
class TestServe:
    async def test_returns_true_after_duration(self) -> None:
        job = AlwaysReadyJob()
        runner = Runner(config=RunnerConfig(poll_interval_ms=10)).add(job)

        healthy = await cli.serve(runner, duration=0.2)

        assert healthy is True
        assert job.entered > 0
        assert runner.is_running() is False

    async def test_returns_false_when_loop_dies(self) -> None:
        config = RunnerConfig(poll_interval_ms=10, catch_handler_errors=False)
        runner = Runner(config=config).add(AlwaysReadyJob(error=RuntimeError('boom')))

        with patch.object(cli.get_logger('runner'), 'error'):
            healthy = await asyncio.wait_for(cli.serve(runner, duration=5), timeout=4)

        assert healthy is False
