"""Bounded-concurrency job scheduler with backpressure."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from .protocols import LoggerProtocol, MirrorJob


class JobScheduler:
    """
    Runs jobs on a fixed pool of worker threads.

    The submitting thread may not have more than ``max_parallelism`` jobs
    outstanding: ``submit`` blocks on a semaphore until a running job
    releases its slot. Slots are released when a job reaches any terminal
    state, whether it succeeded, failed or raised.

    Args:
        max_parallelism: Outstanding-job ceiling and worker count
        cancel_event: Shutdown signal; a blocked ``submit`` gives up when set
        logger: Where unexpected job crashes are reported
        poll_interval: How often a blocked ``submit`` re-checks the cancel event
    """

    def __init__(
        self,
        max_parallelism: int,
        cancel_event: Optional[threading.Event] = None,
        logger: Optional[LoggerProtocol] = None,
        poll_interval: float = 0.1,
    ):
        if max_parallelism <= 0:
            raise ValueError("max_parallelism must be positive")
        self.max_parallelism = max_parallelism
        self._cancel_event = cancel_event or threading.Event()
        self._logger = logger
        self._poll_interval = poll_interval
        self._executor = ThreadPoolExecutor(
            max_workers=max_parallelism, thread_name_prefix="mirror-worker"
        )
        self._slots = threading.BoundedSemaphore(max_parallelism)
        self._condition = threading.Condition()
        self._outstanding = 0
        self._peak_outstanding = 0
        self._submitted = 0
        self._completed = 0

    @property
    def outstanding(self) -> int:
        with self._condition:
            return self._outstanding

    @property
    def peak_outstanding(self) -> int:
        with self._condition:
            return self._peak_outstanding

    @property
    def submitted(self) -> int:
        with self._condition:
            return self._submitted

    @property
    def completed(self) -> int:
        with self._condition:
            return self._completed

    def _acquire_slot(self) -> bool:
        while not self._cancel_event.is_set():
            if self._slots.acquire(timeout=self._poll_interval):
                return True
        return False

    def _release_slot(self) -> None:
        # Count down before freeing the slot so a waiting submitter never
        # observes more than max_parallelism outstanding jobs.
        with self._condition:
            self._outstanding -= 1
            self._completed += 1
            self._condition.notify_all()
        self._slots.release()

    def _run(self, job: MirrorJob) -> None:
        try:
            job.run()
        except Exception as e:  # noqa: BLE001
            if self._logger:
                self._logger.error(f"job for {job.key} crashed: {type(e).__name__}: {e}")
        finally:
            self._release_slot()

    def submit(self, job: MirrorJob) -> bool:
        """
        Block until a slot is free, then hand the job to a worker.

        Returns:
            False when the cancel event was set before a slot became free;
            the job was not submitted.
        """
        if not self._acquire_slot():
            return False
        with self._condition:
            self._outstanding += 1
            self._submitted += 1
            self._peak_outstanding = max(self._peak_outstanding, self._outstanding)
        try:
            self._executor.submit(self._run, job)
        except Exception:
            self._release_slot()
            raise
        return True

    def wait_all(self, timeout: Optional[float] = None) -> bool:
        """Count-to-zero barrier: wait until every submitted job has finished."""
        with self._condition:
            return self._condition.wait_for(lambda: self._outstanding == 0, timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "JobScheduler":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.shutdown(wait=True)
        return False
