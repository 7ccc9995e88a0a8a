"""Logging configuration for invoice search system."""

import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, TextIO

PACKAGE_LOGGER = "invoice_search"

# Chatty at DEBUG/INFO: per-request HTTP lines, pool chatter
QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg", "sklearn", "numpy")

MAX_CONTEXT_VALUE = 60


def setup_logging(
    level: str = "INFO",
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    stream: Optional[TextIO] = None
) -> int:
    """
    Set up logging for the invoice search system.

    Args:
        level: Logging level name; unknown names fall back to INFO
        format_string: Custom format string
        include_timestamp: Whether to include timestamps
        stream: Output stream, stdout by default

    Returns:
        The numeric level applied to the package logger
    """
    if format_string is None:
        format_string = "%(name)s - %(levelname)s - %(message)s"
        if include_timestamp:
            format_string = "%(asctime)s - " + format_string

    numeric_level = logging.getLevelName(level.upper())
    unknown = not isinstance(numeric_level, int)
    if unknown:
        numeric_level = logging.INFO

    logging.basicConfig(
        level=numeric_level,
        format=format_string,
        stream=stream or sys.stdout,
        force=True
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if unknown:
        logger.warning(f"Unknown log level '{level}', using INFO")
    logger.info(f"Logging configured with level: {logging.getLevelName(numeric_level)}")
    return numeric_level


def _format_value(value: Any) -> str:
    text = str(value)
    if len(text) > MAX_CONTEXT_VALUE:
        text = text[:MAX_CONTEXT_VALUE - 3] + "..."
    if not text or any(ch.isspace() for ch in text):
        return repr(text)
    return text


class StructuredLogger:
    """
    Logger that appends ``key=value`` context to every message.

    Query text is a typical context value, so values with whitespace are
    quoted and long values are shortened.
    """

    def __init__(self, name: str, **context: Any):
        self.logger = logging.getLogger(name)
        self.context: Dict[str, Any] = dict(context)

    @classmethod
    def for_request(cls, name: str, request_id: Optional[str] = None, **context: Any) -> 'StructuredLogger':
        """Logger tagged with a request id, generated when not given."""
        return cls(name, request_id=request_id or uuid.uuid4().hex[:8], **context)

    def with_context(self, **kwargs: Any) -> 'StructuredLogger':
        """Copy of this logger with extra context."""
        return StructuredLogger(self.logger.name, **{**self.context, **kwargs})

    def _format_message(self, message: str) -> str:
        if not self.context:
            return message
        context_str = " ".join(f"{k}={_format_value(v)}" for k, v in self.context.items())
        return f"{message} [{context_str}]"

    def _log(self, level: int, message: str, exc_info: bool = False) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._format_message(message), exc_info=exc_info)

    def debug(self, message: str) -> None:
        self._log(logging.DEBUG, message)

    def info(self, message: str) -> None:
        self._log(logging.INFO, message)

    def warning(self, message: str) -> None:
        self._log(logging.WARNING, message)

    def error(self, message: str) -> None:
        self._log(logging.ERROR, message)

    def exception(self, message: str) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._log(logging.ERROR, message, exc_info=True)

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        """Log how long the wrapped block took, at DEBUG, even when it raises."""
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self.debug(f"{operation} took {elapsed_ms:.1f}ms")
