"""Shared data models for bucket mirror."""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import ConfigurationError

DEFAULT_MAX_RETRIES = 5
DEFAULT_MAX_PARALLELISM = 100
DEFAULT_FETCH_SIZE = 1000

_CTIME_PATTERN = re.compile(r"^\s*(\d+)\s*([smhdwy]?)\s*$")
_CTIME_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "": timedelta(days=1),
    "w": timedelta(weeks=1),
    "y": timedelta(days=365),
}


class TransferOutcome(str, Enum):
    """Terminal outcome of one job. Recorded exactly once per key."""

    SKIPPED_UNCHANGED = "skipped-unchanged"
    SKIPPED_FILTERED = "skipped-filtered"
    COPIED = "copied"
    DRY_RUN_WOULD_COPY = "dry-run-would-copy"
    FAILED = "failed"
    DELETED = "deleted"
    DRY_RUN_WOULD_DELETE = "dry-run-would-delete"


class InconclusivePolicy(str, Enum):
    """What to do when the destination state cannot be read."""

    SKIP = "skip"
    FAIL = "fail"


class ObjectSummary(BaseModel):
    """One entry from a listing."""

    model_config = ConfigDict(frozen=True)

    key: str
    size: int = Field(default=0, ge=0)
    last_modified: Optional[datetime] = None
    etag: str = ""


class ListRequest(BaseModel):
    """Query for one page of a listing."""

    model_config = ConfigDict(frozen=True)

    container: str
    prefix: str = ""
    fetch_size: int = Field(default=DEFAULT_FETCH_SIZE, gt=0)
    cursor: Optional[str] = None

    def advance(self, cursor: Optional[str]) -> "ListRequest":
        """Return the request for the page after ``cursor``."""
        return self.model_copy(update={"cursor": cursor})


class ListingPage(BaseModel):
    """Result of one ListRequest."""

    summaries: List[ObjectSummary] = Field(default_factory=list)
    has_more: bool = False
    next_cursor: Optional[str] = None


class Grant(BaseModel):
    """A single access-control grant."""

    model_config = ConfigDict(frozen=True)

    grantee_type: str
    grantee: str
    permission: str


class AccessDescriptor(BaseModel):
    """Access-control state replicated alongside an object."""

    owner_id: Optional[str] = None
    grants: List[Grant] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AccessDescriptor":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.grants


class ObjectMetadata(BaseModel):
    """Metadata needed to reconstruct an object at the destination."""

    size: int = Field(default=0, ge=0)
    etag: str = ""
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None
    cache_control: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None
    content_language: Optional[str] = None
    user_metadata: Dict[str, str] = Field(default_factory=dict)
    server_side_encryption: Optional[str] = None


class TransferResult(BaseModel):
    """Result of running a single job."""

    source_key: str
    dest_key: str = ""
    outcome: Optional[TransferOutcome] = None
    error: str = ""
    bytes_copied: int = 0
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.outcome is not None and self.outcome != TransferOutcome.FAILED


def parse_ctime(ctime: str) -> timedelta:
    """
    Parse a human age like "7" (days), "36h", "2w" or "1y".

    Raises:
        ConfigurationError: If the value is not a number with an optional
            s/m/h/d/w/y suffix.
    """
    match = _CTIME_PATTERN.match(ctime)
    if not match:
        raise ConfigurationError(f"invalid ctime: {ctime!r}")
    amount, unit = match.groups()
    return int(amount) * _CTIME_UNITS[unit]


class MirrorConfig(BaseModel):
    """Configuration for one mirror run."""

    source_container: str = Field(min_length=1)
    dest_container: str = Field(min_length=1)
    prefix: str = ""
    dest_prefix: Optional[str] = None
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, gt=0)
    max_parallelism: int = Field(default=DEFAULT_MAX_PARALLELISM, gt=0)
    fetch_size: int = Field(default=DEFAULT_FETCH_SIZE, gt=0)
    dry_run: bool = False
    verbose: bool = False
    ctime: Optional[str] = None
    max_age: Optional[datetime] = None
    encrypted_destination: bool = False
    delete_removed: bool = False
    retry_delay: float = Field(default=0.01, ge=0)
    inconclusive_policy: InconclusivePolicy = InconclusivePolicy.SKIP

    @model_validator(mode="after")
    def _resolve_cutoff(self) -> "MirrorConfig":
        if self.ctime is not None and self.max_age is None:
            self.max_age = datetime.now(timezone.utc) - parse_ctime(self.ctime)
        if self.max_age is not None and self.max_age.tzinfo is None:
            self.max_age = self.max_age.replace(tzinfo=timezone.utc)
        if self.source_container == self.dest_container and (
            self.dest_prefix is None or self.dest_prefix == self.prefix
        ):
            raise ConfigurationError(
                "source and destination are the same location: "
                f"{self.source_container}/{self.prefix}"
            )
        return self

    @property
    def has_ctime(self) -> bool:
        return self.max_age is not None

    @property
    def has_dest_prefix(self) -> bool:
        return self.dest_prefix is not None

    @property
    def dest_list_prefix(self) -> str:
        return self.dest_prefix if self.dest_prefix is not None else self.prefix
