"""Process-wide counters shared by every job of a mirror run."""

import threading
import time
from typing import Callable, Dict, List, Optional

from .models import TransferOutcome

BANNER = "-" * 68

KB = 1024
MB = KB * 1024
GB = MB * 1024
TB = GB * 1024
PB = TB * 1024
EB = PB * 1024

_BYTE_UNITS = (("EB", EB), ("PB", PB), ("TB", TB), ("GB", GB), ("MB", MB), ("KB", KB))


class AtomicCounter:
    """Monotonic counter with increment-and-fetch semantics."""

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        if amount < 0:
            raise ValueError("counters never decrease")
        with self._lock:
            self._value += amount
            return self._value

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:
        return f"AtomicCounter({self.value})"


def format_bytes(num_bytes: int) -> str:
    """Render a byte count with the largest fitting unit and the raw count."""
    for unit, size in _BYTE_UNITS:
        if num_bytes >= size:
            return f"{num_bytes / size:.2f} {unit} ({num_bytes} bytes)"
    return f"{num_bytes} bytes"


def format_duration(seconds: float) -> str:
    """Render elapsed seconds as H:MM:SS."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{secs:02d}"


class MirrorStats:
    """Statistics for one run.

    Each counter is independently atomic. A snapshot taken while jobs are
    running may see "objects copied" and "bytes copied" from different
    moments.
    """

    COUNTERS = (
        "objects_read",
        "objects_copied",
        "objects_skipped",
        "objects_filtered",
        "dry_run_copies",
        "copy_errors",
        "objects_deleted",
        "dry_run_deletes",
        "delete_errors",
        "get_count",
        "copy_count",
        "delete_count",
        "bytes_copied",
    )

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self.start_time = self._clock()
        self.objects_read = AtomicCounter()
        self.objects_copied = AtomicCounter()
        self.objects_skipped = AtomicCounter()
        self.objects_filtered = AtomicCounter()
        self.dry_run_copies = AtomicCounter()
        self.copy_errors = AtomicCounter()
        self.objects_deleted = AtomicCounter()
        self.dry_run_deletes = AtomicCounter()
        self.delete_errors = AtomicCounter()
        self.get_count = AtomicCounter()
        self.copy_count = AtomicCounter()
        self.delete_count = AtomicCounter()
        self.bytes_copied = AtomicCounter()

    def record(self, outcome: TransferOutcome, bytes_copied: int = 0, deleting: bool = False) -> None:
        """Fold one job outcome into the counters.

        Prune jobs only count deletions and delete failures; a destination
        key whose source still exists is not a skipped copy.
        """
        if deleting:
            if outcome == TransferOutcome.DELETED:
                self.objects_deleted.increment()
            elif outcome == TransferOutcome.DRY_RUN_WOULD_DELETE:
                self.dry_run_deletes.increment()
            elif outcome == TransferOutcome.FAILED:
                self.delete_errors.increment()
            return

        if outcome == TransferOutcome.COPIED:
            self.objects_copied.increment()
            self.bytes_copied.increment(bytes_copied)
        elif outcome == TransferOutcome.SKIPPED_UNCHANGED:
            self.objects_skipped.increment()
        elif outcome == TransferOutcome.SKIPPED_FILTERED:
            self.objects_filtered.increment()
        elif outcome == TransferOutcome.DRY_RUN_WOULD_COPY:
            self.dry_run_copies.increment()
        elif outcome == TransferOutcome.FAILED:
            self.copy_errors.increment()

    @property
    def elapsed(self) -> float:
        return self._clock() - self.start_time

    @property
    def error_count(self) -> int:
        return self.copy_errors.value + self.delete_errors.value

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def snapshot(self) -> Dict[str, int]:
        return {name: getattr(self, name).value for name in self.COUNTERS}

    def report_lines(self) -> List[str]:
        elapsed = self.elapsed
        minutes = elapsed / 60.0
        read = self.objects_read.value
        copied = self.objects_copied.value
        read_rate = read / minutes if minutes > 0 else 0.0
        copy_rate = copied / minutes if minutes > 0 else 0.0
        lines = [
            f"read: {read}",
            f"copied: {copied}",
            f"skipped (unchanged): {self.objects_skipped.value}",
            f"skipped (filtered): {self.objects_filtered.value}",
            f"would copy (dry run): {self.dry_run_copies.value}",
            f"copy errors: {self.copy_errors.value}",
        ]
        if self.objects_deleted.value or self.dry_run_deletes.value or self.delete_errors.value:
            lines += [
                f"deleted: {self.objects_deleted.value}",
                f"would delete (dry run): {self.dry_run_deletes.value}",
                f"delete errors: {self.delete_errors.value}",
            ]
        lines += [
            f"duration: {format_duration(elapsed)}",
            f"read rate: {read_rate:.2f}/minute",
            f"copy rate: {copy_rate:.2f}/minute",
            f"bytes copied: {format_bytes(self.bytes_copied.value)}",
            f"GET operations: {self.get_count.value}",
            f"COPY operations: {self.copy_count.value}",
        ]
        if self.delete_count.value:
            lines.append(f"DELETE operations: {self.delete_count.value}")
        return lines

    def report(self) -> str:
        body = "\n".join(self.report_lines())
        return f"\n{BANNER}\nSTATS BEGIN\n{body}\nSTATS END\n{BANNER}\n"

    def __str__(self) -> str:
        return "\n".join(self.report_lines())
