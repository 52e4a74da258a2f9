"""Mirror engine: drives one run from listing to final statistics."""

import threading
from typing import Callable, Iterator, Optional

from .error_handling import BatchOperationContextManager, RetryPolicy
from .exceptions import ListingError, OperationCancelledError
from .jobs import DeleteJob, TransferJob
from .keys import calculate_source_key
from .models import ListingPage, ListRequest, MirrorConfig, TransferOutcome, TransferResult
from .observability import StructuredLogger
from .protocols import LoggerProtocol, StorageProvider
from .scheduler import JobScheduler
from .stats import MirrorStats


class MirrorEngine:
    """
    Mirrors ``config.source_container`` into ``config.dest_container``.

    One traversal thread (the caller of ``run``) pulls listing pages and
    submits one job per key to a JobScheduler; workers do all per-key remote
    calls. Per-key failures are isolated in the statistics; only a listing
    that cannot proceed makes ``run`` raise.
    """

    def __init__(
        self,
        source: StorageProvider,
        destination: StorageProvider,
        config: MirrorConfig,
        logger: Optional[LoggerProtocol] = None,
        stats: Optional[MirrorStats] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._source = source
        self._destination = destination
        self._config = config
        self._logger = logger or StructuredLogger("bucket-mirror.engine")
        self._stats = stats or MirrorStats()
        self._cancel_event = cancel_event or threading.Event()
        self._retry_policy = RetryPolicy(
            max_attempts=config.max_retries,
            delay=config.retry_delay,
            cancel_event=self._cancel_event,
        )
        self.scheduler: Optional[JobScheduler] = None

    @property
    def stats(self) -> MirrorStats:
        return self._stats

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop submitting new jobs; in-flight jobs finish their current attempt."""
        self._cancel_event.set()

    def _pages(self, provider: StorageProvider, request: ListRequest) -> Iterator[ListingPage]:
        """Lazily yield listing pages until the provider reports no more."""
        while not self.cancelled:
            location = f"{request.container}/{request.prefix}"
            try:
                page = self._retry_policy.call(
                    provider.list,
                    request,
                    description=f"list({location})",
                    logger=self._logger,
                    verbose=self._config.verbose,
                )
            except OperationCancelledError:
                return
            except Exception as e:
                raise ListingError(f"cannot list {location}: {e}") from e
            yield page
            if not page.has_more:
                return
            request = request.advance(page.next_cursor)

    def _on_complete(self, batch: BatchOperationContextManager) -> Callable[[TransferResult], None]:
        def record(result: TransferResult) -> None:
            if result.outcome == TransferOutcome.FAILED:
                batch.add_error(result.error or "unknown error", result.source_key)

        return record

    def _mirror_pass(self, scheduler: JobScheduler, on_complete: Callable[[TransferResult], None]) -> None:
        config = self._config
        request = ListRequest(
            container=config.source_container,
            prefix=config.prefix,
            fetch_size=config.fetch_size,
        )
        for page in self._pages(self._source, request):
            for summary in page.summaries:
                job = TransferJob(
                    summary,
                    self._source,
                    self._destination,
                    config,
                    self._stats,
                    self._logger,
                    retry_policy=self._retry_policy,
                    on_complete=on_complete,
                )
                if not scheduler.submit(job):
                    self._logger.warning(f"shutdown requested, not scheduling {summary.key}")
                    return
                self._stats.objects_read.increment()

    def _prune_pass(self, scheduler: JobScheduler, on_complete: Callable[[TransferResult], None]) -> None:
        config = self._config
        request = ListRequest(
            container=config.dest_container,
            prefix=config.dest_list_prefix,
            fetch_size=config.fetch_size,
        )
        for page in self._pages(self._destination, request):
            for summary in page.summaries:
                source_key = calculate_source_key(summary.key, config.prefix, config.dest_prefix)
                job = DeleteJob(
                    summary.key,
                    source_key,
                    self._source,
                    self._destination,
                    config,
                    self._stats,
                    self._logger,
                    retry_policy=self._retry_policy,
                    on_complete=on_complete,
                )
                if not scheduler.submit(job):
                    return

    def log_configuration(self) -> None:
        config = self._config
        self._logger.info("=" * 80)
        self._logger.info("BUCKET MIRROR")
        self._logger.info("=" * 80)
        self._logger.info(f"  Source:        {self._source.name}:{config.source_container}/{config.prefix}")
        self._logger.info(
            f"  Destination:   {self._destination.name}:{config.dest_container}/{config.dest_list_prefix}"
        )
        self._logger.info(f"  Max parallel:  {config.max_parallelism}")
        self._logger.info(f"  Max retries:   {config.max_retries}")
        self._logger.info(f"  Fetch size:    {config.fetch_size}")
        if config.has_ctime:
            self._logger.info(f"  Max age:       {config.ctime} (cutoff={config.max_age.isoformat()})")
        if config.dry_run:
            self._logger.info("  DRY RUN: no changes will be made")
        if config.delete_removed:
            self._logger.info("  Deleting destination keys missing from the source")
        self._logger.info("=" * 80)

    def run(self) -> MirrorStats:
        """
        Run one mirror pass (plus the prune pass when configured).

        Statistics are logged on the way out whether the run finished,
        was cancelled or failed.

        Raises:
            ListingError: If a listing cannot proceed after retries.
        """
        config = self._config
        self.log_configuration()
        scheduler = JobScheduler(
            config.max_parallelism, cancel_event=self._cancel_event, logger=self._logger
        )
        self.scheduler = scheduler
        operation = f"Mirror {config.source_container}/{config.prefix} -> {config.dest_container}"
        try:
            with BatchOperationContextManager(operation, logger=self._logger) as batch:
                on_complete = self._on_complete(batch)
                try:
                    self._mirror_pass(scheduler, on_complete)
                    scheduler.wait_all()
                    if config.delete_removed and not self.cancelled:
                        self._prune_pass(scheduler, on_complete)
                finally:
                    scheduler.wait_all()
        finally:
            scheduler.shutdown(wait=True)
            if self.cancelled:
                self._logger.warning("mirror interrupted before completion")
            self._logger.info(self._stats.report())
        return self._stats
