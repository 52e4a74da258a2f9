"""Core mirroring engine and shared components for bucket mirror."""

from .logging_config import (
    configure_logging,
    get_logger,
    setup_logger,
)
from .exceptions import (
    MirrorError,
    StorageError,
    ObjectNotFoundError,
    ListingError,
    ConfigurationError,
    OperationCancelledError,
    with_error_handling,
)
from .models import (
    AccessDescriptor,
    Grant,
    InconclusivePolicy,
    ListingPage,
    ListRequest,
    MirrorConfig,
    ObjectMetadata,
    ObjectSummary,
    TransferOutcome,
    TransferResult,
)
from .fingerprint import Fingerprint, fingerprint, fingerprints_equal
from .keys import calculate_dest_key, calculate_source_key
from .stats import MirrorStats, format_bytes, format_duration
from .error_handling import RetryPolicy
from .jobs import DeleteJob, JobState, TransferJob
from .scheduler import JobScheduler
from .engine import MirrorEngine

__all__ = [
    "MirrorConfig",
    "ObjectSummary",
    "ListRequest",
    "ListingPage",
    "ObjectMetadata",
    "AccessDescriptor",
    "Grant",
    "TransferOutcome",
    "TransferResult",
    "InconclusivePolicy",
    "Fingerprint",
    "fingerprint",
    "fingerprints_equal",
    "calculate_dest_key",
    "calculate_source_key",
    "MirrorStats",
    "format_bytes",
    "format_duration",
    "RetryPolicy",
    "TransferJob",
    "DeleteJob",
    "JobState",
    "JobScheduler",
    "MirrorEngine",
    "setup_logger",
    "configure_logging",
    "get_logger",
    "MirrorError",
    "StorageError",
    "ObjectNotFoundError",
    "ListingError",
    "ConfigurationError",
    "OperationCancelledError",
    "with_error_handling",
]
