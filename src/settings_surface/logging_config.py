"""Logging configuration utilities."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config.settings import LoggingSettings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3

ANSI_RESET = "\x1b[0m"
ANSI_COLORS = {
    logging.DEBUG: "\x1b[36m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[35m",
}


class ColorFormatter(logging.Formatter):
    """Formatter that adds ANSI colors to log levels."""

    def __init__(self, fmt: str, use_color: bool = True) -> None:
        super().__init__(fmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        """Format the record with color if enabled.

        Args:
            record: The log record to format.

        Returns:
            The formatted log message.
        """
        original_levelname = record.levelname
        if self._use_color:
            color = ANSI_COLORS.get(record.levelno)
            if color:
                record.levelname = f"{color}{record.levelname}{ANSI_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def configure_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    use_color: Optional[bool] = None,
) -> None:
    """Configure root logging to stderr and, optionally, a rotating file.

    Args:
        level: Log level name.
        log_file: Optional log file path.
        use_color: Force color on or off; None colors only TTY streams.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    stream_handler = logging.StreamHandler()
    if use_color is None:
        use_color = hasattr(stream_handler.stream, "isatty") and stream_handler.stream.isatty()
    stream_handler.setFormatter(ColorFormatter(LOG_FORMAT, use_color=use_color))
    stream_handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(stream_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)


def configure_from_settings(settings: LoggingSettings) -> None:
    """Configure logging from the ``logging`` section of the engine config."""
    configure_logging(
        level=settings.level,
        log_file=Path(settings.file) if settings.file else None,
        use_color=settings.color,
    )
