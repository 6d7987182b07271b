import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Generator, Optional, Union

from .config import notification_settings

# Schedule currently being processed, injected into every log line.
current_schedule_id: ContextVar[Optional[str]] = ContextVar(
    "current_schedule_id", default=None
)


class ScheduleTraceFormatter(logging.Formatter):
    """
    Formatter that tags records with the active schedule id and enforces UTC.
    """

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        super().__init__(fmt, datefmt)
        # Fire instants are stored in UTC, logs must line up with them.
        self.converter = time.gmtime

    def formatTime(self, record, datefmt=None):
        """Overridden to emit strict ISO-8601 UTC timestamps."""
        ct = self.converter(record.created)
        if datefmt:
            return time.strftime(datefmt, ct)
        t = time.strftime("%Y-%m-%d %H:%M:%S", ct)
        return "%s.%03dZ" % (t, record.msecs)

    def format(self, record: logging.LogRecord) -> str:
        sid = current_schedule_id.get()
        # Distinct attribute name to avoid collisions with extra={}
        record.schedule_str = f"[{sid}] " if sid else ""
        return super().format(record)


def get_logger(name: str) -> logging.Logger:
    """
    Returns a standard logger instance.

    >>> logger = get_logger(__name__)
    """
    return logging.getLogger(name)


def setup_logging(
    level: Union[int, str, None] = None,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10_485_760,  # 10MB
    backup_count: int = 10,
    capture_roots: bool = False,
    module_name: str = "flash_notifications",
) -> logging.Logger:
    """
    Configure logging for the engine.

    Args:
        level: Logging level (INFO, DEBUG, etc.). Defaults to ``LOG_LEVEL``.
        log_file: Optional path for a rotating log file. Defaults to
                  ``LOG_FILE``.
        capture_roots: If True, configures the root logger.
                       If False, only configures 'flash_notifications.*' loggers.

    Returns:
        The logger that was configured.
    """
    if level is None:
        level = notification_settings.LOG_LEVEL
    if log_file is None:
        log_file = notification_settings.LOG_FILE

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    target_logger = (
        logging.getLogger() if capture_roots else logging.getLogger(module_name)
    )

    # Reset handlers so tests can reconfigure
    target_logger.handlers.clear()
    target_logger.setLevel(level)

    log_format = "%(asctime)s %(levelname)-8s %(schedule_str)s%(name)s: %(message)s"
    formatter = ScheduleTraceFormatter(log_format)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    target_logger.addHandler(console)

    if log_file:
        file_path = Path(log_file).resolve()
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                file_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            target_logger.addHandler(file_handler)
        except OSError as e:
            # Read-only file systems still get console logging
            sys.stderr.write(f"Failed to setup log file: {e}\n")

    if not capture_roots:
        target_logger.propagate = False

    return target_logger


def set_schedule_id(value: str) -> Token:
    return current_schedule_id.set(value)


def reset_schedule_id(token: Token) -> None:
    current_schedule_id.reset(token)


@contextmanager
def scoped_schedule_id(value: str) -> Generator[None, None, None]:
    """
    Tag every log line emitted inside the block with a schedule id.

    >>> with scoped_schedule_id("notification-42"):
    ...     logger.info("firing")
    """
    token = set_schedule_id(value)
    try:
        yield
    finally:
        reset_schedule_id(token)
