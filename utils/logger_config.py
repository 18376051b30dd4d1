"""
Non-Blocking Logging Configuration

Moves log I/O to a background QueueListener thread so request handlers awaiting
LiveKit, GCS or Postgres never block the event loop on a console write.

Usage:
    from utils.logger_config import configure_non_blocking_logging

    # At application startup (before any logging)
    listener = configure_non_blocking_logging()

    # At shutdown (optional, atexit handles this automatically)
    stop_logging()
"""

import atexit
import logging
import logging.handlers
import os
import queue
import sys
from typing import Optional

_log_listener: Optional[logging.handlers.QueueListener] = None

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"

# Client libraries that log every request at INFO/DEBUG
NOISY_LOGGERS = (
    "httpcore",
    "httpx",
    "asyncio",
    "urllib3",
    "aiohttp",
    "google.auth",
    "google.auth.transport",
    "google.resumable_media",
    "livekit",
    "livekit.api",
)

_LEVEL_NAMES = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_log_level(value: str | int | None) -> int:
    """Resolve a log level from a level name, a numeric string or an int."""
    if value is None:
        return logging.INFO
    if isinstance(value, int):
        return value

    stripped = value.strip().upper()
    if stripped in _LEVEL_NAMES:
        return _LEVEL_NAMES[stripped]

    try:
        return int(stripped)
    except ValueError:
        return logging.INFO


def configure_non_blocking_logging(
    level: str | int | None = None,
    log_format: str = DEFAULT_LOG_FORMAT,
    date_format: str = DEFAULT_DATE_FORMAT,
    queue_size: int = -1,
    silence_noisy_libs: bool = True,
) -> logging.handlers.QueueListener:
    """
    Route all root logging through a QueueHandler drained by a background thread.

    Args:
        level: Log level name or number (default: LOG_LEVEL env var or INFO)
        log_format: Format string for log messages
        date_format: Format string for timestamps
        queue_size: Max queue size (-1 for unbounded)
        silence_noisy_libs: Raise client library loggers to WARNING

    Returns:
        The started QueueListener
    """
    global _log_listener

    if level is None:
        level = os.getenv("LOG_LEVEL")
    resolved = resolve_log_level(level)

    if _log_listener is not None:
        _log_listener.stop()
        _log_listener = None

    log_queue: queue.Queue = queue.Queue(queue_size)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved)
    console_handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))

    listener = logging.handlers.QueueListener(
        log_queue,
        console_handler,
        respect_handler_level=True,
    )
    listener.start()

    queue_handler = logging.handlers.QueueHandler(log_queue)
    queue_handler.setLevel(resolved)

    root = logging.getLogger()
    root.setLevel(resolved)
    root.handlers.clear()
    root.addHandler(queue_handler)

    if silence_noisy_libs:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)

    atexit.register(stop_logging)
    _log_listener = listener

    return listener


def get_log_listener() -> Optional[logging.handlers.QueueListener]:
    """Get the current log listener for manual shutdown if needed."""
    return _log_listener


def stop_logging() -> None:
    """Stop the background logging thread, flushing queued records."""
    global _log_listener
    if _log_listener is not None:
        try:
            _log_listener.stop()
        except RuntimeError:
            # Listener thread already joined
            pass
        _log_listener = None


def is_logging_configured() -> bool:
    """Check if non-blocking logging has been configured."""
    return _log_listener is not None


__all__ = [
    "configure_non_blocking_logging",
    "get_log_listener",
    "stop_logging",
    "is_logging_configured",
    "resolve_log_level",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_DATE_FORMAT",
]
