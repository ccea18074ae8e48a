# cronrunner/core/models/schedule.py
from __future__ import annotations
from datetime import datetime, timezone
from itertools import islice
from typing import Iterator, Optional
from zoneinfo import ZoneInfo
from croniter import croniter, CroniterBadDateError
from cronrunner.core.errors import (
    ErrorCode,
    ScheduleParseError,
    ValidationReport,
    raise_collected,
)

FIELD_NAMES = ('second', 'minute', 'hour', 'day_of_month', 'month', 'day_of_week', 'year')

_EXPRESSION_HELP = (
    'use six fields (seconds first), optionally followed by a year:\n'
    '  sec min hour day-of-month month day-of-week [year]\n'
    'example: "1/5 * * * * *" fires every five seconds'
)


class Schedule:
    """
    A parsed cron expression with seconds granularity.

    Fields, in order: second, minute, hour, day of month, month, day of week
    and an optional year. Numeric day-of-week values follow croniter
    (0 or 7 is Sunday); names such as MON or FRI are the portable spelling.

    Examples:
        - Every 5 seconds starting at :01 -> Schedule('1/5 * * * * *')
        - Weekdays at 09:30:00 -> Schedule('0 30 9 * * MON-FRI')
        - Daily at 03:00 Berlin time -> Schedule('0 0 3 * * *', timezone='Europe/Berlin')
    """

    def __init__(self, expression: str, timezone: str = 'UTC') -> None:
        self.expression = ' '.join(expression.split())
        self.timezone = timezone
        self._tz, self._croniter_expr = _parse(self.expression, timezone)

    @classmethod
    def parse(cls, expression: str, timezone: str = 'UTC') -> Schedule:
        """Parse an expression, raising ScheduleParseError when it is invalid."""
        return cls(expression, timezone=timezone)

    def upcoming(self, after: Optional[datetime] = None) -> Iterator[datetime]:
        """
        Lazily yield fire times strictly after `after` (default: now).

        Every call starts a fresh sequence. Yielded values are UTC-aware.
        The sequence ends early only when the expression has no further
        matches (e.g. a year field in the past).
        """
        if after is None:
            after = datetime.now(timezone.utc)
        if after.tzinfo is None:
            raise ValueError('after must be timezone-aware')

        cursor = croniter(self._croniter_expr, after.astimezone(self._tz))
        while True:
            try:
                candidate: datetime = cursor.get_next(datetime)
            except CroniterBadDateError:
                return
            fire_at = candidate.astimezone(timezone.utc)
            if fire_at <= after:
                continue
            yield fire_at

    def next_after(self, after: Optional[datetime] = None) -> Optional[datetime]:
        """Return the first fire time after `after`, or None if there is none."""
        return next(self.upcoming(after), None)

    def take(self, after: Optional[datetime] = None, count: int = 1) -> list[datetime]:
        """Return up to `count` fire times after `after`."""
        return list(islice(self.upcoming(after), count))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schedule):
            return NotImplemented
        return (self.expression, self.timezone) == (other.expression, other.timezone)

    def __hash__(self) -> int:
        return hash((self.expression, self.timezone))

    def __repr__(self) -> str:
        return f'Schedule({self.expression!r}, timezone={self.timezone!r})'

    def __str__(self) -> str:
        return self.expression


def _parse(expression: str, tz_str: str) -> tuple[ZoneInfo, str]:
    """
    Validate expression and time zone together.

    Returns the resolved zone and the expression reordered for croniter,
    which expects the seconds field after day-of-week.
    """
    report = ValidationReport('schedule')
    tz: Optional[ZoneInfo] = None
    croniter_expr: Optional[str] = None

    try:
        tz = ZoneInfo(tz_str)
    except Exception as e:
        report.add(
            ScheduleParseError(
                message=f"invalid timezone '{tz_str}'",
                code=ErrorCode.SCHEDULE_INVALID_TIMEZONE,
                notes=[f'underlying error: {e}'],
                help_text='use an IANA zone name such as "UTC" or "America/New_York"',
            )
        )

    fields = expression.split()
    if len(fields) not in (6, 7):
        report.add(
            ScheduleParseError(
                message=f"cron expression '{expression}' has {len(fields)} fields",
                code=ErrorCode.SCHEDULE_INVALID_EXPRESSION,
                notes=[f'expected 6 or 7 fields: {", ".join(FIELD_NAMES)}'],
                help_text=_EXPRESSION_HELP,
            )
        )
    else:
        candidate = ' '.join(fields[1:6] + fields[:1] + fields[6:])
        try:
            croniter(candidate, datetime.now(timezone.utc))
        except (ValueError, KeyError) as e:
            report.add(
                ScheduleParseError(
                    message=f"invalid cron expression '{expression}'",
                    code=ErrorCode.SCHEDULE_INVALID_EXPRESSION,
                    notes=[f'underlying error: {e}'],
                    help_text=_EXPRESSION_HELP,
                )
            )
        else:
            croniter_expr = candidate

    if tz is None or croniter_expr is None:
        raise_collected(report)
        raise ScheduleParseError(
            message=f"could not parse schedule '{expression}'",
            code=ErrorCode.SCHEDULE_INVALID_EXPRESSION,
        )
    return tz, croniter_expr
