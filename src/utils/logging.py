"""
Logging configuration utilities for the STOMP-Lite client.

Library modules only call logging.getLogger(__name__); handlers and levels
are configured here by the command-line entry points.
"""

import logging
import sys
from typing import Iterable, Optional, TextIO


PACKAGE_LOGGERS = ['src.stomplite', 'src.tui']

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
SHORT_FORMAT = '%(name)s - %(levelname)s - %(message)s'
DEBUG_FORMAT = '%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s'

BODY_PREVIEW = 64


def setup_logger(
    name: str,
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Attach a stream handler to the named logger.

    Calling this again for the same logger only updates its level.

    Args:
        name: Logger name, usually a package such as 'src.stomplite'
        level: Logging level
        format_string: Custom format string
        include_timestamp: Whether the default format includes a timestamp
        stream: Output stream; stdout if omitted

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    if format_string is None:
        format_string = DEFAULT_FORMAT if include_timestamp else SHORT_FORMAT

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(format_string))
    logger.addHandler(handler)
    return logger


def set_global_log_level(level: int, loggers: Iterable[str] = PACKAGE_LOGGERS) -> None:
    """
    Set the level of the root logger, the given loggers and their handlers.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO)
        loggers: Logger names to update besides the root logger
    """
    logging.getLogger().setLevel(level)
    for logger_name in loggers:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        for handler in logger.handlers:
            handler.setLevel(level)


def configure_debug_logging(loggers: Iterable[str] = PACKAGE_LOGGERS) -> None:
    """Switch to DEBUG, which traces every frame, and add line numbers to the output."""
    loggers = list(loggers)
    set_global_log_level(logging.DEBUG, loggers)

    for logger_name in [''] + loggers:
        for handler in logging.getLogger(logger_name).handlers:
            handler.setFormatter(logging.Formatter(DEBUG_FORMAT))


def silence_external_loggers() -> None:
    """Keep the rich renderer and asyncio quiet below WARNING."""
    for name in ('rich', 'asyncio'):
        logging.getLogger(name).setLevel(logging.WARNING)


def describe_frame(frame, preview: int = BODY_PREVIEW) -> str:
    """
    One-line summary of a frame for debug logs.

    Example: SEND destination=/queue/x content-type=text/plain body=b'hello' (5 bytes)
    """
    parts = [frame.command]
    parts.extend(f"{name}={value}" for name, value in frame.headers.items())
    if frame.body:
        body = frame.body[:preview]
        suffix = "..." if len(frame.body) > preview else ""
        parts.append(f"body={body!r}{suffix} ({len(frame.body)} bytes)")
    return " ".join(parts)
