# cronrunner/core/cli.py
"""
CLI for running cron runners and inspecting cron expressions.

Module path resolution follows the usual `module:attribute` convention:
1. User provides dotted module path: `cronrunner run app.jobs:runner`
2. User is responsible for PYTHONPATH / running from correct directory
3. Convenience: if cwd has pyproject.toml, we add cwd to sys.path
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Any

from cronrunner.core.banner import print_banner
from cronrunner.core.errors import ConfigurationError, CronRunnerError, ErrorCode
from cronrunner.core.logging import apply_level, get_logger
from cronrunner.core.models.schedule import Schedule
from cronrunner.core.scheduler.runner import Runner
from cronrunner.core.scheduler.threaded import ThreadedRunner
from cronrunner.core.utils.imports import (
    import_file_path,
    import_module_path,
    setup_sys_path_from_cwd,
)

# How often the run command checks that the scheduling loop is still alive.
_WATCH_INTERVAL_SECONDS = 1.0


def _resolve_module_argument(args: argparse.Namespace) -> str:
    """Return module path from --module or positional, error if missing."""
    module_path = getattr(args, 'module', None) or getattr(args, 'module_pos', None)
    if not module_path:
        raise ConfigurationError(
            message='module path is required',
            code=ErrorCode.CLI_INVALID_ARGS,
            notes=['no --module flag or positional module argument provided'],
            help_text=(
                'provide module path in one of these formats:\n'
                '  cronrunner run app.jobs:runner  (recommended)\n'
                '  cronrunner run app/jobs.py:runner  (file path)\n'
                '  cronrunner run app.jobs  (auto-discover runner variable)'
            ),
        )
    return module_path


def _parse_locator(locator: str) -> tuple[str, str | None]:
    """
    Parse a module locator into (module_path, attribute_name).

    - "app.jobs:runner" -> ("app.jobs", "runner")
    - "app.jobs" -> ("app.jobs", None)
    - "/path/to/jobs.py:runner" -> ("/path/to/jobs.py", "runner")
    """
    if ':' in locator:
        module_part, attr = locator.rsplit(':', 1)
        return (module_part, attr)
    return (locator, None)


def _is_file_path(path: str) -> bool:
    """Check if path looks like a file path (vs dotted module path)."""
    return path.endswith('.py') or os.path.sep in path or '/' in path


def _as_runner(obj: Any) -> Runner | None:
    if isinstance(obj, Runner):
        return obj
    if isinstance(obj, ThreadedRunner):
        return obj.runner
    return None


def discover_runner(module_locator: str) -> tuple[Runner, str, str]:
    """
    Import a module and find the Runner to start.

    Accepts a dotted module path or a file path, each optionally followed by
    `:attribute`. A ThreadedRunner is unwrapped to its Runner.

    Returns:
        (runner, variable_name, module_name)
    """
    logger = get_logger('cli')

    project_root = setup_sys_path_from_cwd()
    if project_root:
        logger.info(f'Added project root to sys.path: {project_root}')

    module_path, attr_name = _parse_locator(module_locator)

    if _is_file_path(module_path):
        if not module_path.endswith('.py'):
            module_path += '.py'
        try:
            module = import_file_path(os.path.realpath(module_path))
        except FileNotFoundError as e:
            raise ConfigurationError(
                message=f'module file not found: {module_path}',
                code=ErrorCode.CLI_INVALID_LOCATOR,
                notes=[str(e)],
                help_text='check the path before the colon in the locator',
            )
        module_name = module.__name__
    else:
        try:
            module = import_module_path(module_path)
        except ModuleNotFoundError as e:
            raise ConfigurationError(
                message=f'module not found: {module_path}',
                code=ErrorCode.CLI_INVALID_LOCATOR,
                notes=[str(e), f'sys.path: {sys.path[:5]}...'],
                help_text=(
                    'ensure you are running from the correct directory\n'
                    'or set PYTHONPATH to include your project root'
                ),
            )
        module_name = module_path

    if attr_name:
        if not hasattr(module, attr_name):
            raise ConfigurationError(
                message=f"module '{module_name}' has no attribute '{attr_name}'",
                code=ErrorCode.CLI_INVALID_LOCATOR,
                help_text='check the name after the colon in the locator',
            )
        runner = _as_runner(getattr(module, attr_name))
        if runner is None:
            raise ConfigurationError(
                message=f"'{attr_name}' in module '{module_name}' is not a Runner",
                code=ErrorCode.CLI_INVALID_LOCATOR,
                notes=[f'got {type(getattr(module, attr_name)).__name__}'],
            )
        var_name = attr_name
    else:
        found: list[tuple[Runner, str]] = []
        for name in dir(module):
            if name.startswith('_'):
                continue
            candidate = _as_runner(getattr(module, name))
            if candidate is not None:
                found.append((candidate, name))

        if not found:
            raise ConfigurationError(
                message=f'no Runner instance found in {module_name}',
                code=ErrorCode.CLI_INVALID_LOCATOR,
                help_text='specify the variable name: module.path:variable',
            )
        if len(found) > 1:
            raise ConfigurationError(
                message=f'multiple Runner instances found in {module_name}',
                code=ErrorCode.CLI_INVALID_LOCATOR,
                notes=[f'candidates: {[name for _, name in found]}'],
                help_text='specify which one: module.path:variable',
            )
        runner, var_name = found[0]

    logger.info(f"Discovered runner '{var_name}' from {module_name}")
    return runner, var_name, module_name


def setup_logging(loglevel: str) -> None:
    """Configure logging level globally."""
    apply_level(getattr(logging, loglevel.upper(), logging.INFO))


async def serve(runner: Runner, duration: float | None = None) -> bool:
    """
    Run `runner` until SIGINT/SIGTERM, `duration` seconds, or a loop crash.

    Returns False when the scheduling loop died on its own.
    """
    logger = get_logger('cli')
    stop_requested = asyncio.Event()

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except (NotImplementedError, RuntimeError):
            # Not the main thread, or no signal support on this platform
            continue
        installed.append(sig)

    await runner.run()
    deadline = None if duration is None else loop.time() + duration
    healthy = True
    try:
        while not stop_requested.is_set():
            if not runner.is_running():
                logger.error('Scheduling loop is no longer running')
                healthy = False
                break
            timeout = _WATCH_INTERVAL_SECONDS
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    logger.info(f'Run duration of {duration}s elapsed')
                    break
                timeout = min(timeout, remaining)
            try:
                await asyncio.wait_for(stop_requested.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                continue
        if stop_requested.is_set():
            logger.info('Received interrupt signal, stopping runner...')
    finally:
        await runner.stop()
        for sig in installed:
            loop.remove_signal_handler(sig)
    return healthy


def run_command(args: argparse.Namespace) -> None:
    """Handle run command."""
    logger = get_logger('cli')

    loglevel: str = args.loglevel
    setup_logging(loglevel)

    try:
        module_locator = _resolve_module_argument(args)
        runner, _var_name, _module_name = discover_runner(module_locator)
    except CronRunnerError as e:
        logger.error(str(e))
        sys.exit(1)
    except Exception as e:
        logger.error(f'Failed to discover runner: {e}')
        sys.exit(1)

    if runner.jobs_to_run() == 0:
        logger.error('Runner has no jobs to run')
        sys.exit(1)

    if not args.no_banner:
        print_banner(runner)

    try:
        healthy = asyncio.run(serve(runner, args.duration))
    except KeyboardInterrupt:
        logger.info('Runner interrupted by user')
        return
    if not healthy:
        sys.exit(1)


def next_command(args: argparse.Namespace) -> None:
    """Handle next command: print upcoming fire times of an expression."""
    try:
        schedule = Schedule.parse(args.expression, timezone=args.timezone)
    except CronRunnerError as e:
        get_logger('cli').error(str(e))
        sys.exit(1)

    for fire_at in schedule.take(count=args.count):
        print(fire_at.isoformat())


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f'expected a positive integer, got {value}')
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f'expected a positive number, got {value}')
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cronrunner',
        description='In-process cron job runner',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the Runner defined as `runner` in app/jobs.py
  cronrunner run app.jobs:runner

  # Run for one minute, then stop
  cronrunner run app/jobs.py:runner --duration 60

  # Show the next five fire times of an expression
  cronrunner next "1/5 * * * * *" --count 5
""",
    )
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Start a runner until interrupted')
    run_parser.add_argument(
        '-m',
        '--module',
        dest='module',
        help='Module path (e.g., app.jobs:runner)',
    )
    run_parser.add_argument(
        'module_pos',
        nargs='?',
        help='Module path (e.g., app.jobs:runner)',
    )
    run_parser.add_argument(
        '--loglevel',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        default='INFO',
        type=str.upper,
        help='Logging level (default: INFO)',
    )
    run_parser.add_argument(
        '--duration',
        type=_positive_float,
        default=None,
        help='Stop after this many seconds (default: run until interrupted)',
    )
    run_parser.add_argument(
        '--no-banner',
        action='store_true',
        help='Do not print the startup banner',
    )

    next_parser = subparsers.add_parser('next', help='Print upcoming fire times')
    next_parser.add_argument('expression', help='Cron expression, seconds first')
    next_parser.add_argument(
        '-n',
        '--count',
        type=_positive_int,
        default=5,
        help='How many fire times to print (default: 5)',
    )
    next_parser.add_argument(
        '--timezone',
        default='UTC',
        help='IANA time zone used to evaluate the expression (default: UTC)',
    )
    return parser


def main() -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if args.command == 'run':
        run_command(args)
    elif args.command == 'next':
        next_command(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
