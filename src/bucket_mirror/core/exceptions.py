"""Custom exceptions and error handling utilities for bucket mirror."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .logging_config import get_logger


class MirrorError(Exception):
    """Base exception for all bucket mirror errors."""


class StorageError(MirrorError):
    """Error raised when a storage backend call fails."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ObjectNotFoundError(StorageError):
    """The requested key does not exist in the container.

    This is an expected outcome (destination absent), never a transient
    failure, so retry loops let it through on the first attempt.
    """


class ListingError(MirrorError):
    """Listing the source container failed; no keys can be discovered."""


class ConfigurationError(MirrorError):
    """Error raised for invalid configuration options."""


class OperationCancelledError(MirrorError):
    """A retry delay was interrupted by the shutdown signal."""


F = TypeVar("F", bound=Callable[..., Any])


def with_error_handling(func: F) -> F:
    """Wrap a function so unexpected exceptions surface as MirrorError."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:  # type: ignore[override]
        logger = get_logger("bucket-mirror.errors")
        try:
            return func(*args, **kwargs)
        except MirrorError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Unhandled error in {func.__name__}: {exc}", exc_info=True)
            raise MirrorError(str(exc)) from exc

    return wrapper  # type: ignore[return-value]
