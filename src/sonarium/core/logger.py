"""Logging configuration and setup.

The API and the scan worker can run side by side on the same data directory,
so each process writes its own log file: logs/sonarium-api.log and
logs/sonarium-worker.log.
"""

import sys
from pathlib import Path

from loguru import logger

from sonarium.core.config import settings

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {process} | {name}:{line} - {message}"


def log_file_path(process_name: str) -> Path:
    return settings.DATA_DIR / "logs" / f"{process_name}.log"


def setup_logging(process_name: str = "sonarium") -> Path:
    """Configures Loguru for console output and a per-process log file.

    Replaces any previously installed handlers, so calling it twice does not
    duplicate output. The file sink is enqueued: scan steps log from executor
    threads.

    Args:
        process_name: Base name of the log file, e.g. "sonarium-worker".

    Returns:
        Path of the log file.
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL, format=CONSOLE_FORMAT)

    log_file = log_file_path(process_name)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_file),
        level=settings.LOG_LEVEL,
        format=FILE_FORMAT,
        rotation=settings.LOG_ROTATION,
        retention=settings.LOG_RETENTION,
        compression="zip",
        enqueue=True,
        diagnose=False,
    )

    logger.info(f"Logging to {log_file} (level {settings.LOG_LEVEL}).")
    return log_file
