"""
Logging for livevod.

Every record can carry the channel it concerns; handlers attach it through
`get_channel_logger`. Console output is colored for terminals and plain for
Lambda, where stdout is shipped to CloudWatch as is.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


ROOT_LOGGER = 'livevod'

_RESET = "\033[0m"
_CHANNEL_COLOR = "\033[96m"
_TIME_COLOR = "\033[90m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.INFO: "\033[92m",
    logging.WARNING: "\033[93m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[91m",
}


def _paint(text: str, color: str, colored: bool) -> str:
    return f"{color}{text}{_RESET}" if colored else text


class ConsoleFormatter(logging.Formatter):
    """`HH:MM:SS LEVEL [channel] message`, optionally with ANSI colors."""

    def __init__(self, colored: bool = True):
        super().__init__()
        self.colored = colored

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        level = _paint(f"{record.levelname:8}", _LEVEL_COLORS.get(record.levelno, _RESET), self.colored)
        channel = getattr(record, 'channel', None)
        prefix = _paint(f"[{channel}]", _CHANNEL_COLOR, self.colored) + " " if channel else ""

        message = f"{_paint(timestamp, _TIME_COLOR, self.colored)} {level} {prefix}{record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class FileFormatter(logging.Formatter):
    """Pipe-separated lines with full date and logger name, for log files."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')
        channel = getattr(record, 'channel', '-')

        message = f"{timestamp} | {record.levelname:8} | {record.name:24} | {channel} | {record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


class ChannelLoggerAdapter(logging.LoggerAdapter):
    """Stamps every record with the channel it concerns."""

    def __init__(self, logger: logging.Logger, channel: str):
        super().__init__(logger, {'channel': channel})

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {})
        kwargs['extra']['channel'] = self.extra['channel']
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5,
    colored: bool = True
) -> logging.Logger:
    """
    Configure the `livevod` logger. Safe to call more than once.

    Args:
        level: Logging level name.
        log_file: Rotating log file; console only when None.
        max_size_mb: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        colored: ANSI colors on the console.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ConsoleFormatter(colored=colored))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(FileFormatter())
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return logging.getLogger(f'{ROOT_LOGGER}.{name}')
    return logging.getLogger(ROOT_LOGGER)


def get_channel_logger(channel: str, name: Optional[str] = None) -> ChannelLoggerAdapter:
    """Logger for `name` that tags records with an IVS channel ARN or Twitch login."""
    return ChannelLoggerAdapter(get_logger(name), channel)
