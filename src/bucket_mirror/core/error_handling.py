# src/bucket_mirror/core/error_handling.py

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ObjectNotFoundError, OperationCancelledError, StorageError
from .observability import StructuredLogger
from .protocols import LoggerProtocol

T = TypeVar("T")

NOT_FOUND_ERROR_CODES = ("404", "NoSuchKey", "NotFound", "NoSuchBucket")

DEFAULT_RETRY_DELAY = 0.01


def translate_client_error(
    exc: Exception, operation: str, container: str, key: str = ""
) -> StorageError:
    """
    Map a botocore failure onto the mirror error taxonomy.

    A 404-equivalent becomes ObjectNotFoundError so callers can tell "key
    absent" apart from transient failures. Everything else is a StorageError
    chained to the original exception.
    """
    location = f"{container}/{key}" if key else container
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        message = f"{operation}({location}) failed: {code} {error.get('Message', '')}".strip()
        if code in NOT_FOUND_ERROR_CODES or status == 404:
            translated: StorageError = ObjectNotFoundError(
                message, code=code, status_code=404
            )
        else:
            translated = StorageError(message, code=code, status_code=status)
    elif isinstance(exc, BotoCoreError):
        translated = StorageError(f"{operation}({location}) failed: {exc}")
    else:
        translated = StorageError(f"{operation}({location}) failed: {exc}")
    translated.__cause__ = exc
    return translated


@dataclass
class RetryPolicy:
    """
    Bounded retry with a short fixed delay between attempts.

    Attributes:
        max_attempts: Attempts per operation, including the first one.
        delay: Seconds to wait between attempts.
        cancel_event: Shutdown signal; setting it ends any pending delay
            immediately with OperationCancelledError.
    """

    max_attempts: int = 5
    delay: float = DEFAULT_RETRY_DELAY
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def call(
        self,
        func: Callable[..., T],
        *args: Any,
        description: str = "",
        on_attempt: Optional[Callable[[], Any]] = None,
        logger: Optional[LoggerProtocol] = None,
        verbose: bool = False,
        **kwargs: Any,
    ) -> T:
        """
        Call ``func`` until it succeeds or the attempts run out.

        ObjectNotFoundError is returned to the caller on the first attempt.
        Exhausting the attempts re-raises the last error.

        Args:
            func: The remote operation.
            description: Name used in log lines, e.g. "get_metadata(bucket/key)".
            on_attempt: Called before every attempt (remote-call accounting).
            logger: Where retry warnings go.
            verbose: Log every failed attempt rather than only the final one.
        """
        name = description or getattr(func, "__name__", "operation")
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            if on_attempt is not None:
                on_attempt()
            try:
                return func(*args, **kwargs)
            except ObjectNotFoundError:
                raise
            except Exception as e:
                last_error = e
                if attempt >= self.max_attempts:
                    if logger:
                        logger.error(
                            f"{name} failed (try #{attempt}/{self.max_attempts}), giving up: {e}"
                        )
                    break
                if logger and verbose:
                    logger.warning(
                        f"{name} failed (try #{attempt}/{self.max_attempts}), retrying: {e}"
                    )

            if self.cancel_event.wait(self.delay):
                if logger:
                    logger.error(f"interrupted while waiting to retry {name}")
                raise OperationCancelledError(f"{name} cancelled after {attempt} attempt(s)")

        assert last_error is not None
        raise last_error


class BatchOperationContextManager:
    """
    Context manager for a mirror pass to collect and summarize per-key errors.

    Workers report failures through ``add_error`` concurrently. Only the first
    ``max_reported`` failures are kept for the summary; ``error_count`` counts
    all of them.
    """

    def __init__(
        self,
        operation_name: str = "Mirror",
        logger: Optional[LoggerProtocol] = None,
        max_reported: int = 100,
    ):
        self.operation_name = operation_name
        self.errors: List[Dict[str, str]] = []
        self.error_count = 0
        self.max_reported = max_reported
        self.logger = logger or StructuredLogger("bucket-mirror.batch")
        self._lock = threading.Lock()

    def __enter__(self) -> "BatchOperationContextManager":
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self.error_count:
            self.logger.warning(
                f"{self.operation_name} completed with {self.error_count} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i + 1}/{self.error_count} for key "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
            if self.error_count > len(self.errors):
                self.logger.error(
                    f"  ... {self.error_count - len(self.errors)} more error(s) not shown"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} failed due to an unhandled exception: {exc_val}"
            )
        else:
            self.logger.info(f"{self.operation_name} completed successfully.")
        return False

    def add_error(self, error_message: str, item_identifier: str = "Unknown item") -> None:
        """Report an error for one key from any worker thread."""
        with self._lock:
            self.error_count += 1
            if len(self.errors) < self.max_reported:
                self.errors.append({"item": item_identifier, "error": str(error_message)})
