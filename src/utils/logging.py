"""
Logging utility module for relaylog.

Provides JSON-structured logging with a correlation ID per replication session.
"""

import json
import logging
import uuid
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from contextvars import ContextVar

# Context variable for correlation ID propagation
_correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)

LOG_LEVELS = {
    'fatal': logging.CRITICAL,
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'info': logging.INFO,
    'debug': logging.DEBUG,
}

# Attributes every LogRecord carries; anything else came in via ``extra=``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord('', logging.INFO, '', 0, '', (), None).__dict__
) | {'message', 'asctime', 'taskName'}


def resolve_level(level: str) -> int:
    """Map a level name (fatal/error/warn/info/debug) to a logging level.

    Raises:
        ValueError: If the name is not recognised
    """
    try:
        return LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level {level!r}; expected one of {sorted(LOG_LEVELS)}") from None


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID from context."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set correlation ID in context.

    Args:
        correlation_id: Optional correlation ID. If None, generates a new UUID.

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id():
    """Clear the correlation ID from context."""
    _correlation_id.set(None)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Fields passed through ``extra=`` are merged into the top level.
        """
        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        correlation_id = get_correlation_id()
        if correlation_id:
            log_data['correlation_id'] = correlation_id

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data.setdefault(key, value)

        return json.dumps(log_data, default=str)


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Get a JSON logger with correlation ID propagation.

    Args:
        name: Logger name (typically __name__)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())

    logger.addHandler(handler)
    logger.propagate = False  # Prevent duplicate logs from parent loggers

    return logger


def configure_logging(level: str = 'info', name: str = 'src') -> logging.Logger:
    """Attach the JSON handler to the package logger at a named level."""
    logger = get_logger(name)
    numeric = resolve_level(level)
    logger.setLevel(numeric)
    for handler in logger.handlers:
        handler.setLevel(numeric)
    return logger


class CorrelationContext:
    """Context manager for correlation ID propagation."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._previous_id: Optional[str] = None

    def __enter__(self) -> str:
        """Enter context and set correlation ID.

        Returns:
            The correlation ID
        """
        self._previous_id = get_correlation_id()
        return set_correlation_id(self.correlation_id)

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context and restore previous correlation ID."""
        if self._previous_id is not None:
            set_correlation_id(self._previous_id)
        else:
            clear_correlation_id()
