"""
Logging Utility - Console and Rotating File Logging

Provides centralized logging configuration for the exporter. Console output is
filtered at the configured level while the rotating log file keeps everything,
so DEBUG-level polling detail is available after a run without cluttering the
terminal.

Usage:
    from drawexport.utils.logging import setup_logging

    setup_logging(level="INFO", log_file="main.log")
    logger = logging.getLogger(__name__)
    logger.info("Export started (stack=%s)", "reardmener")
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default")


def setup_logging(
    level: str = "INFO",
    log_file: str | None = "main.log",
    max_bytes: int = 1048576,
    backup_count: int = 3,
) -> None:
    """Configure application-wide logging.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Rotating log file path, or None to log to stdout only
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated log files to keep
    """
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
