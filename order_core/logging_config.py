# Logging configuration - RotatingFileHandler, structured format, error alerting

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Callable, Optional

# Default log directory (project root / logs)
LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FILE = LOG_DIR / "order_core.log"
LOG_MAX_BYTES = 5 * 1024 * 1024  # 5 MB
LOG_BACKUP_COUNT = 5

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ErrorAlertHandler(logging.Handler):
    """Handler that invokes callback(message, level) on ERROR and CRITICAL."""

    def __init__(self, callback: Callable[[str, str], None]):
        super().__init__(level=logging.ERROR)
        self.callback = callback

    def emit(self, record: logging.LogRecord):
        if record.levelno < logging.ERROR:
            return
        try:
            msg = self.format(record)
            self.callback(msg, record.levelname)
        except Exception:
            self.handleError(record)


def _parse_level(level) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    log_path: Optional[Path] = None,
    max_bytes: int = LOG_MAX_BYTES,
    backup_count: int = LOG_BACKUP_COUNT,
    console: bool = True,
    level=logging.INFO,
    alert_callback: Optional[Callable[[str, str], None]] = None,
    logger_name: Optional[str] = None,
) -> logging.Logger:
    """
    Configure structured logging with file rotation and optional console.
    Configures the root logger unless logger_name is given; returns the
    configured logger.
    """
    log_path = Path(log_path or LOG_FILE)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    target = logging.getLogger(logger_name)
    target.setLevel(_parse_level(level))
    # Avoid duplicate handlers when called multiple times
    for h in list(target.handlers):
        target.removeHandler(h)
        h.close()

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)
    target.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        target.addHandler(console_handler)

    if alert_callback:
        alert_handler = ErrorAlertHandler(alert_callback)
        alert_handler.setFormatter(formatter)
        target.addHandler(alert_handler)

    return target
