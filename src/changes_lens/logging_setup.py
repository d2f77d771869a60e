"""Loguru logging setup for changes-lens.

All components log through Loguru.

Usage:
    from changes_lens.logging_setup import setup_logging, get_logger

    # At startup
    setup_logging()

    # In modules
    logger = get_logger(__name__)
    logger.info("Refreshing", repo="/path/to/repo")

Features:
    - Async-safe with enqueue=True
    - Automatic rotation (10 MB) and retention (7 days) for the file sink
    - Colored console output on stderr, so stdout stays clean for --json
"""

import sys
from pathlib import Path
from typing import Any

from loguru import logger

from .config import LoggingConfig
from .paths import get_logs_dir

# Default console format with colors
CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

# Simple format without colors (for file output)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | "
    "{level: <8} | "
    "{name}:{function}:{line} | "
    "{message}"
)


def setup_logging(
    log_level: str | None = None,
    console: bool = True,
    file: bool = False,
    log_dir: Path | None = None,
    serialize_file: bool = True,
    diagnose_console: bool = True,
    diagnose_file: bool = False,
) -> None:
    """Configure logging with console and file handlers.

    Uses ``enqueue=True`` for thread-safe writes; the file watcher logs from
    its own thread.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Defaults to INFO.
        console: Enable console (stderr) output.
        file: Enable file output.
        log_dir: Directory for log files (default: auto-detect using paths.py).
        serialize_file: Use JSON format for file logs.
        diagnose_console: Show variable values in console tracebacks.
        diagnose_file: Show variable values in file tracebacks.

    Example:
        >>> setup_logging()  # Console only, INFO
        >>> setup_logging(log_level="DEBUG", file=True)
    """
    # Remove default handler
    logger.remove()

    if log_level is None:
        log_level = "INFO"

    if console:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=True,
            backtrace=True,
            diagnose=diagnose_console,
            enqueue=True,
        )

    if file:
        if log_dir is None:
            log_dir = get_logs_dir()
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            str(log_dir / "changes-lens.log"),
            level=log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
            serialize=serialize_file,
            enqueue=True,
            backtrace=True,
            diagnose=diagnose_file,
        )


def setup_logging_from_config(config: LoggingConfig) -> None:
    """Configure logging from the ``logging`` settings section."""
    setup_logging(
        log_level=config.level,
        console=config.console,
        file=config.file,
        log_dir=Path(config.log_dir) if config.log_dir else None,
    )


def get_logger(name: str, **context: Any) -> "logger":
    """Get a context-bound logger.

    Args:
        name: Logger name (usually __name__)
        **context: Additional context to bind to all log messages

    Returns:
        Logger instance with bound context

    Example:
        >>> logger = get_logger(__name__, repo="/src/project")
        >>> logger.info("Refreshing")  # Includes repo in output
    """
    return logger.bind(name=name, **context)
