# cronrunner/core/logging.py
import logging
import sys
from datetime import datetime
from typing import Any

# Level applied to loggers created by get_logger(); see set_default_level()
_default_level: int = logging.INFO

# LogRecord attribute carrying the job slot label, set through `extra`
JOB_LABEL_ATTR = 'job_label'


def job_label(slot: int) -> str:
    """Human label for a job slot: slot 0 is 'cron-job-1'."""
    return f'cron-job-{slot + 1}'


def job_extra(slot: int) -> dict[str, Any]:
    """`extra=` mapping that tags a log line with the slot label."""
    return {JOB_LABEL_ATTR: job_label(slot)}


class ColoredFormatter(logging.Formatter):
    """
    `[HH:MM:SS] [component] [LEVEL]   [cron-job-N] message`

    The slot column only appears on records logged with `extra=job_extra(slot)`,
    so handler START/FINISH lines from concurrent jobs stay tellable apart.
    """

    RESET = '\033[0m'
    TIME = '\033[94m'
    TEXT = '\033[97m'
    SLOT = '\033[96m'

    LEVEL_COLORS = {
        'DEBUG': '\033[90m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[1;91m',
    }

    def _paint(self, text: str, color: str) -> str:
        return f'{color}{text}{self.RESET}'

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        # 'cronrunner.runner' -> 'runner'
        component = record.name.rsplit('.', 1)[-1]
        level_color = self.LEVEL_COLORS.get(record.levelname, self.TEXT)

        parts = [
            self._paint(f'[{stamp}]', self.TIME) + ' ',
            self._paint(f'[{component}]'.ljust(12), self.TEXT),
            self._paint(f'[{record.levelname}]'.ljust(10), level_color),
        ]
        label = getattr(record, JOB_LABEL_ATTR, None)
        if label:
            parts.append(self._paint(f'[{label}]', self.SLOT) + ' ')
        parts.append(self._paint(record.getMessage(), self.TEXT))

        formatted = ''.join(parts)
        if record.exc_info:
            formatted += '\n' + self.formatException(record.exc_info)
        return formatted


def set_default_level(level: int) -> None:
    """Set the level used by loggers created from now on."""
    global _default_level
    _default_level = level


def get_logger(component_name: str) -> logging.Logger:
    """Return the `cronrunner.<component>` logger, attaching a stdout handler once."""
    logger = logging.getLogger(f'cronrunner.{component_name}')

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ColoredFormatter())
        handler.setLevel(_default_level)
        logger.addHandler(handler)
        logger.setLevel(_default_level)
        # Our own handler already prints; the root logger would print twice
        logger.propagate = False

    return logger


def apply_level(level: int) -> None:
    """Set the level on the default and on every cronrunner logger created so far."""
    set_default_level(level)

    logging.getLogger('cronrunner').setLevel(level)
    for name in list(logging.Logger.manager.loggerDict):
        if isinstance(name, str) and name.startswith('cronrunner.'):
            lgr = logging.getLogger(name)
            lgr.setLevel(level)
            for handler in lgr.handlers:
                handler.setLevel(level)
