"""Startup banner for the cronrunner CLI."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from cronrunner.core.scheduler.runner import Runner


class Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIMMED = '\033[2m'

    WHITE = '\033[37m'
    BRIGHT_WHITE = '\033[97m'
    CYAN = '\033[36m'
    BRIGHT_CYAN = '\033[96m'
    BRIGHT_YELLOW = '\033[93m'


def _color(text: str, *codes: str) -> str:
    if not codes:
        return text
    return ''.join(codes) + text + Colors.RESET


LOGO_TEXT = r"""
   ___________  ___  ______  ______  ___  ___  ___  ____
  / __/ __/ _ \/ _ \/ _ \ \/ / ___/ / _ \/ _ \/ _ \/ __/     {version}
 / /_/ / / // / // / , _/\  / /__  / , _/ // / // / _/       cron jobs for
 \__/_/  \___/_//_/_/|_| /_/\___/ /_/|_|\___/\___/___/       long-running processes
"""


def get_version() -> str:
    """Get cronrunner version from package metadata."""
    try:
        from importlib.metadata import version
        return version('cronrunner')
    except Exception:
        return 'dev'


def _format_ms(ms: int) -> str:
    """Format milliseconds into a human-readable string."""
    if ms >= 60_000:
        mins, remainder_s = divmod(ms // 1_000, 60)
        return f'{mins}m{remainder_s}s' if remainder_s else f'{mins}m'
    if ms >= 1_000:
        secs, remainder_ms = divmod(ms, 1_000)
        return f'{secs}.{remainder_ms // 100}s' if remainder_ms else f'{secs}s'
    return f'{ms}ms'


def _format_bool(val: bool) -> str:
    return 'yes' if val else 'no'


def _write_section_header(lines: list[str], name: str, suffix: str = '') -> None:
    header = _color(name, Colors.BRIGHT_CYAN, Colors.BOLD)
    lines.append(f'[{header}]{suffix}')


def _write_kv(lines: list[str], key: str, value: str) -> None:
    """Write a colored '.> key: value' line with consistent alignment."""
    prefix = _color('.>', Colors.DIMMED)
    # Pad key before coloring to maintain alignment
    colored_key = _color(f'{key}:'.ljust(22), Colors.WHITE, Colors.BOLD)
    lines.append(f'  {prefix} {colored_key} {_color(value, Colors.BRIGHT_WHITE)}')


def format_banner(runner: 'Runner', now: datetime | None = None) -> str:
    """Build the banner text: logo, runner config and the pending jobs."""
    if now is None:
        now = datetime.now(timezone.utc)
    config = runner.config
    lines: list[str] = []

    logo = LOGO_TEXT.replace('{version}', f'v{get_version()}')
    lines.append(_color(logo, Colors.BRIGHT_YELLOW, Colors.BOLD))

    _write_section_header(lines, 'config')
    _write_kv(lines, 'runner', config.name)
    _write_kv(lines, 'dispatch', config.dispatch_mode.value)
    _write_kv(lines, 'poll_interval', _format_ms(config.poll_interval_ms))
    _write_kv(lines, 'catch_handler_errors', _format_bool(config.catch_handler_errors))
    _write_kv(lines, 'stop_timeout', _format_ms(config.stop_timeout_ms))
    lines.append('')

    jobs = runner.jobs
    _write_section_header(lines, 'jobs', f' ({len(jobs)} registered)')
    for slot, job in enumerate(jobs, start=1):
        bullet = _color('.', Colors.DIMMED)
        schedule = job.schedule()
        if schedule is None:
            detail = 'no schedule'
        else:
            fire_at = schedule.next_after(now)
            next_str = fire_at.strftime('%Y-%m-%d %H:%M:%S UTC') if fire_at else 'never'
            detail = f'{schedule} ({schedule.timezone}) next={next_str}'
        flags: list[str] = []
        if not job.is_active():
            flags.append('inactive')
        if job.allow_parallel_runs():
            flags.append('parallel')
        flag_str = f' [{", ".join(flags)}]' if flags else ''
        name = _color(f'{slot}. {job.name}', Colors.WHITE)
        lines.append(f'  {bullet} {name}  {_color(detail, Colors.DIMMED)}{flag_str}')
    lines.append('')

    return '\n'.join(lines)


def print_banner(runner: 'Runner', file: TextIO | None = None) -> None:
    """Print startup banner with runner configuration and job list."""
    if file is None:
        file = sys.stdout
    print(format_banner(runner), file=file)
