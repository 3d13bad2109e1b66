"""
Logging setup for swarmdeck.

All loggers live under the "swarmdeck" namespace. Console output goes
through rich; the engine additionally writes to a log file so the
dashboard's terminal stays clean.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

from .settings import get_logs_dir


ROOT_LOGGER = "swarmdeck"
DEFAULT_LOG_DIR = get_logs_dir()
FILE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the swarmdeck namespace."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    console: bool = True,
    rich_console: Optional[Console] = None,
) -> logging.Logger:
    """Configure the swarmdeck root logger.

    Existing handlers are removed first so repeated calls do not stack
    duplicate output.

    Args:
        level: Logging level for the swarmdeck namespace
        log_file: Optional file to append log records to
        console: Whether to log to the terminal (via rich)
        rich_console: Console to render to (stderr by default)
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    if console:
        handler = RichHandler(
            console=rich_console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def setup_engine_logging(log_file: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """Log the background engine to a file only (the dashboard owns the terminal)."""
    setup_logging(
        level=level,
        log_file=log_file or DEFAULT_LOG_DIR / "engine.log",
        console=False,
    )
    return get_logger("engine")


def setup_cli_logging(level: int = logging.WARNING) -> logging.Logger:
    """Quiet console logging for one-shot CLI commands."""
    setup_logging(level=level, console=True)
    return get_logger("cli")


class StructuredLogger:
    """Logger wrapper that appends key=value context to every message."""

    def __init__(self, logger: logging.Logger, **context: Any):
        self._logger = logger
        self._context = context

    def with_context(self, **context: Any) -> "StructuredLogger":
        merged = {**self._context, **context}
        return StructuredLogger(self._logger, **merged)

    def _format(self, msg: str, kwargs: dict) -> str:
        fields = {**self._context, **kwargs}
        if not fields:
            return msg
        suffix = " ".join(f"{k}={v}" for k, v in fields.items())
        return f"{msg} {suffix}"

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._logger.debug(self._format(msg, kwargs))

    def info(self, msg: str, **kwargs: Any) -> None:
        self._logger.info(self._format(msg, kwargs))

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._logger.warning(self._format(msg, kwargs))

    def error(self, msg: str, **kwargs: Any) -> None:
        self._logger.error(self._format(msg, kwargs))

    def exception(self, msg: str, **kwargs: Any) -> None:
        self._logger.exception(self._format(msg, kwargs))


def get_structured_logger(name: str, **context: Any) -> StructuredLogger:
    return StructuredLogger(get_logger(name), **context)
