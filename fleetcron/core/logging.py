# fleetcron/core/logging.py
"""
Per-component loggers for fleetcron.

Every scheduler process writes one line per event to stdout:

    [12:00:01] [claim]      [INFO]    Claimed task 'backup-manager' (id=5) ...

Lines are colored when stdout is a terminal. NO_COLOR turns color off and
FLEETCRON_FORCE_COLOR turns it on regardless, same as error rendering.
"""

import logging
import os
import sys
from datetime import datetime

LOGGER_NAMESPACE = 'fleetcron'

# Width of the component column; fits '[reclaimer]' and '[scheduler]'
COMPONENT_WIDTH = 13
LEVEL_WIDTH = 10

_default_level: int = logging.INFO


def _stream_supports_color(stream: object) -> bool:
    if os.environ.get('FLEETCRON_FORCE_COLOR', '').lower() in ('1', 'true', 'yes'):
        return True
    if os.environ.get('NO_COLOR') is not None:
        return False
    isatty = getattr(stream, 'isatty', None)
    return bool(isatty and isatty())


class ColoredFormatter(logging.Formatter):
    """[time] [component] [level] message, optionally ANSI-colored."""

    RESET = '\033[0m'
    TIME_COLOR = '\033[94m'
    TEXT_COLOR = '\033[97m'

    LEVEL_COLORS = {
        'DEBUG': '\033[90m',
        'INFO': '\033[92m',
        'WARNING': '\033[93m',
        'ERROR': '\033[91m',
        'CRITICAL': '\033[1;91m',
    }

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color

    def _paint(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f'{color}{text}{self.RESET}'

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        component = record.name.rsplit('.', 1)[-1]
        level_color = self.LEVEL_COLORS.get(record.levelname, self.TEXT_COLOR)

        line = (
            self._paint(f'[{stamp}]', self.TIME_COLOR)
            + ' '
            + self._paint(f'[{component}]'.ljust(COMPONENT_WIDTH), self.TEXT_COLOR)
            + self._paint(f'[{record.levelname}]'.ljust(LEVEL_WIDTH), level_color)
            + self._paint(record.getMessage(), self.TEXT_COLOR)
        )
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def set_default_level(level: int) -> None:
    """Level given to loggers created after this call."""
    global _default_level
    _default_level = level


def get_logger(component_name: str) -> logging.Logger:
    """
    Logger named fleetcron.<component_name> with its own stdout handler.

    Does not propagate to the root logger, so embedding applications that
    configure logging.basicConfig() do not see every line twice.
    """
    logger = logging.getLogger(f'{LOGGER_NAMESPACE}.{component_name}')
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(use_color=_stream_supports_color(sys.stdout)))
    handler.setLevel(_default_level)
    logger.addHandler(handler)
    logger.setLevel(_default_level)
    logger.propagate = False
    return logger


def configure_level(level: int) -> None:
    """Apply a level to the root logger and every fleetcron.* logger created so far."""
    set_default_level(level)
    logging.getLogger().setLevel(level)

    prefix = f'{LOGGER_NAMESPACE}.'
    for name in list(logging.Logger.manager.loggerDict):
        if not (isinstance(name, str) and name.startswith(prefix)):
            continue
        lgr = logging.getLogger(name)
        lgr.setLevel(level)
        for handler in lgr.handlers:
            handler.setLevel(level)
