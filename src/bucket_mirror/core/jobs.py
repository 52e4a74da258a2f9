"""Per-key jobs: decide whether a key needs work, then do it."""

import threading
import time
from datetime import timezone
from enum import Enum
from typing import Any, Callable, List, Optional

from .error_handling import RetryPolicy
from .exceptions import MirrorError, ObjectNotFoundError, OperationCancelledError
from .fingerprint import Fingerprint, fingerprints_equal
from .keys import calculate_dest_key
from .models import (
    AccessDescriptor,
    InconclusivePolicy,
    MirrorConfig,
    ObjectSummary,
    TransferOutcome,
    TransferResult,
)
from .observability import LogContext
from .protocols import LoggerProtocol, MirrorJob, StorageProvider
from .stats import AtomicCounter, MirrorStats

SERVER_SIDE_ENCRYPTION = "AES256"


class JobState(str, Enum):
    CREATED = "created"
    DECIDING = "deciding"
    SKIPPED = "skipped"
    COPYING = "copying"
    DELETING = "deleting"
    COMPLETED = "completed"
    FAILED = "failed"


class _InconclusiveRead(MirrorError):
    """Destination state could not be read and the policy says fail."""


class BaseJob(MirrorJob):
    """State tracking, retries and single-shot completion shared by all jobs."""

    component = "job"
    deleting = False

    def __init__(
        self,
        key: str,
        source: StorageProvider,
        destination: StorageProvider,
        config: MirrorConfig,
        stats: MirrorStats,
        logger: LoggerProtocol,
        retry_policy: Optional[RetryPolicy] = None,
        on_complete: Optional[Callable[[TransferResult], Any]] = None,
    ):
        self.key = key
        self._source = source
        self._destination = destination
        self._config = config
        self._stats = stats
        self._logger = logger
        self._retry_policy = retry_policy or RetryPolicy(
            max_attempts=config.max_retries, delay=config.retry_delay
        )
        self._on_complete = on_complete
        self._state = JobState.CREATED
        self._transitions: List[JobState] = [JobState.CREATED]
        self._result: Optional[TransferResult] = None
        self._run_lock = threading.Lock()
        self._log_context = LogContext.for_key(self.component, key)

    def __str__(self) -> str:
        return self.key

    @property
    def state(self) -> JobState:
        return self._state

    @property
    def transitions(self) -> List[JobState]:
        return list(self._transitions)

    @property
    def result(self) -> Optional[TransferResult]:
        return self._result

    def _enter(self, state: JobState) -> None:
        self._state = state
        self._transitions.append(state)

    def _verbose(self, message: str) -> None:
        if self._config.verbose:
            self._logger.info(message, self._log_context)

    def _retry(self, counter: AtomicCounter, description: str, func: Callable[..., Any], *args: Any) -> Any:
        return self._retry_policy.call(
            func,
            *args,
            description=description,
            on_attempt=counter.increment,
            logger=self._logger,
            verbose=self._config.verbose,
        )

    def _execute(self, result: TransferResult) -> TransferOutcome:
        raise NotImplementedError

    def run(self) -> TransferResult:
        """Run to exactly one terminal outcome.

        Per-key failures are recorded in the result and the statistics, never
        raised. The completion callback (scheduler slot release) runs on every
        exit path.
        """
        with self._run_lock:
            if self._state != JobState.CREATED:
                raise RuntimeError(f"job for {self.key} already ran")
            self._enter(JobState.DECIDING)

        start_time = time.time()
        result = TransferResult(source_key=self.key)
        outcome = TransferOutcome.FAILED
        try:
            outcome = self._execute(result)
        except OperationCancelledError as e:
            result.error = str(e)
            self._logger.error(f"cancelled while handling {self.key}: {e}", self._log_context)
        except _InconclusiveRead as e:
            result.error = str(e)
        except MirrorError as e:
            result.error = str(e)
            self._logger.error(f"error handling key {self.key}: {e}", self._log_context)
        except Exception as e:  # noqa: BLE001
            result.error = str(e)
            self._logger.error(
                f"unexpected error handling key {self.key}: {type(e).__name__}: {e}",
                self._log_context,
            )
        finally:
            result.outcome = outcome
            result.processing_time = time.time() - start_time
            self._result = result
            if outcome == TransferOutcome.FAILED:
                self._enter(JobState.FAILED)
            elif outcome in (TransferOutcome.SKIPPED_UNCHANGED, TransferOutcome.SKIPPED_FILTERED):
                self._enter(JobState.SKIPPED)
            else:
                self._enter(JobState.COMPLETED)
            try:
                self._stats.record(outcome, result.bytes_copied, deleting=self.deleting)
            finally:
                if self._on_complete is not None:
                    self._on_complete(result)
            self._verbose(f"done with {self.key} ({outcome.value})")
        return result


class TransferJob(BaseJob):
    """Handles a single source key.

    Determines whether the destination copy is missing or stale and, if so,
    copies the object with its metadata and access control.
    """

    component = "transfer_job"

    def __init__(self, summary: ObjectSummary, *args: Any, **kwargs: Any):
        super().__init__(summary.key, *args, **kwargs)
        self.summary = summary
        self.dest_key = calculate_dest_key(summary.key, self._config.prefix, self._config.dest_prefix)

    def _execute(self, result: TransferResult) -> TransferOutcome:
        result.dest_key = self.dest_key
        outcome = self._decide()
        if outcome is not None:
            return outcome
        self._enter(JobState.COPYING)
        return self._copy(result)

    def _is_too_old(self) -> bool:
        config = self._config
        if not config.has_ctime:
            return False
        last_modified = self.summary.last_modified
        if last_modified is None:
            self._verbose(f"No Last-Modified header for key: {self.key}")
            return False
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        if last_modified < config.max_age:
            self._verbose(
                f"key {self.dest_key} (lastmod={last_modified.isoformat()}) is older than "
                f"{config.ctime} (cutoff={config.max_age.isoformat()}), not copying"
            )
            return True
        return False

    def _decide(self) -> Optional[TransferOutcome]:
        """Return a skip outcome, or None when the key must be copied."""
        config = self._config
        if self._is_too_old():
            return TransferOutcome.SKIPPED_FILTERED

        location = f"{config.dest_container}/{self.dest_key}"
        try:
            dest_metadata = self._retry(
                self._stats.get_count,
                f"get_metadata({location})",
                self._destination.get_metadata,
                config.dest_container,
                self.dest_key,
            )
        except ObjectNotFoundError:
            self._verbose(f"Key not found in destination (will copy): {self.dest_key}")
            return None
        except OperationCancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            if config.inconclusive_policy == InconclusivePolicy.FAIL:
                self._logger.error(
                    f"Error getting metadata for {location} (failing key): {e}", self._log_context
                )
                raise _InconclusiveRead(f"destination state unknown for {location}: {e}") from e
            self._logger.warning(
                f"Error getting metadata for {location} (not copying): {e}", self._log_context
            )
            return TransferOutcome.SKIPPED_FILTERED

        if fingerprints_equal(Fingerprint.of(self.summary), Fingerprint.of(dest_metadata)):
            self._verbose(f"Destination file is same as source, not copying: {self.key}")
            return TransferOutcome.SKIPPED_UNCHANGED
        return None

    def _copy(self, result: TransferResult) -> TransferOutcome:
        config = self._config
        source_location = f"{config.source_container}/{self.key}"

        metadata = self._retry(
            self._stats.get_count,
            f"get_metadata({source_location})",
            self._source.get_metadata,
            config.source_container,
            self.key,
        )

        try:
            access = self._retry(
                self._stats.get_count,
                f"get_access_descriptor({source_location})",
                self._source.get_access_descriptor,
                config.source_container,
                self.key,
            )
        except OperationCancelledError:
            raise
        except MirrorError as e:
            if not config.encrypted_destination:
                raise
            self._logger.warning(
                f"access control unreadable for {source_location}, using default: {e}",
                self._log_context,
            )
            access = AccessDescriptor.empty()

        if config.encrypted_destination:
            metadata = metadata.model_copy(update={"server_side_encryption": SERVER_SIDE_ENCRYPTION})

        if config.dry_run:
            self._logger.info(
                f"Would have copied {self.key} to destination: {self.dest_key}", self._log_context
            )
            return TransferOutcome.DRY_RUN_WOULD_COPY

        self._verbose(f"copying {self.key} to: {self.dest_key}")
        self._retry(
            self._stats.copy_count,
            f"copy({source_location} -> {config.dest_container}/{self.dest_key})",
            self._destination.copy_from,
            self._source,
            config.source_container,
            self.key,
            config.dest_container,
            self.dest_key,
            metadata,
            access,
        )
        result.bytes_copied = metadata.size
        self._verbose(f"successfully copied {self.key} to: {self.dest_key}")
        return TransferOutcome.COPIED


class DeleteJob(BaseJob):
    """Removes a destination key whose source counterpart no longer exists."""

    component = "delete_job"
    deleting = True

    def __init__(self, dest_key: str, source_key: str, *args: Any, **kwargs: Any):
        super().__init__(dest_key, *args, **kwargs)
        self.source_key = source_key

    def _execute(self, result: TransferResult) -> TransferOutcome:
        config = self._config
        result.source_key = self.source_key
        result.dest_key = self.key
        source_location = f"{config.source_container}/{self.source_key}"
        try:
            self._retry(
                self._stats.get_count,
                f"get_metadata({source_location})",
                self._source.get_metadata,
                config.source_container,
                self.source_key,
            )
        except ObjectNotFoundError:
            pass
        except OperationCancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            self._logger.warning(
                f"Error getting metadata for {source_location} (not deleting): {e}",
                self._log_context,
            )
            return TransferOutcome.SKIPPED_FILTERED
        else:
            return TransferOutcome.SKIPPED_UNCHANGED

        self._enter(JobState.DELETING)
        if config.dry_run:
            self._logger.info(
                f"Would have deleted {self.key} from destination", self._log_context
            )
            return TransferOutcome.DRY_RUN_WOULD_DELETE

        try:
            self._retry(
                self._stats.delete_count,
                f"delete({config.dest_container}/{self.key})",
                self._destination.delete,
                config.dest_container,
                self.key,
            )
        except ObjectNotFoundError:
            self._verbose(f"{self.key} already gone from destination")
            return TransferOutcome.DELETED
        self._verbose(f"deleted {self.key} from destination")
        return TransferOutcome.DELETED
