"""Structured logging with per-key correlation context."""

import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

from .logging_config import get_logger


def new_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class LogContext:
    """Who is logging: the job component, the key it works on, and extras.

    Every line a job writes carries the same correlation id, so the
    interleaved output of many worker threads can be split back per key.
    """

    correlation_id: str = field(default_factory=new_correlation_id)
    operation: str = ""
    component: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_key(cls, component: str, key: str) -> "LogContext":
        return cls(correlation_id=f"{component}:{key}", component=component)

    def with_operation(self, operation: str) -> "LogContext":
        return replace(self, operation=operation)

    def with_metadata(self, **kwargs: Any) -> "LogContext":
        return replace(self, metadata={**self.metadata, **kwargs})


class StructuredLogger:
    """
    LoggerProtocol implementation over a stdlib logger.

    Lines with a context render as ``[operation] [correlation] message
    (k=v, ...)``; formatting is skipped when the level is disabled.
    """

    def __init__(self, name: str, level: Optional[int] = None):
        self._logger = get_logger(name)
        if level is not None:
            self._logger.setLevel(level)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def format_message(
        self, message: str, context: Optional[LogContext] = None, **kwargs: Any
    ) -> str:
        fields = dict(kwargs)
        parts = []
        if context is not None:
            if context.operation:
                parts.append(f"[{context.operation}]")
            parts.append(f"[{context.correlation_id}]")
            fields = {**context.metadata, **fields}
        parts.append(message)
        rendered = " ".join(parts)
        if fields:
            rendered += " (" + ", ".join(f"{k}={v}" for k, v in fields.items()) + ")"
        return rendered

    def log(
        self, level: int, message: str, context: Optional[LogContext] = None, **kwargs: Any
    ) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self.format_message(message, context, **kwargs))

    def debug(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.DEBUG, message, context, **kwargs)

    def info(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.INFO, message, context, **kwargs)

    def warning(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.WARNING, message, context, **kwargs)

    def error(self, message: str, context: Optional[LogContext] = None, **kwargs: Any) -> None:
        self.log(logging.ERROR, message, context, **kwargs)


def create_logger(name: str, verbose: bool = False) -> StructuredLogger:
    """Create the structured logger used by the mirror services."""
    return StructuredLogger(name, logging.DEBUG if verbose else None)
