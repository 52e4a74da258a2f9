"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, Optional, Protocol

from .models import AccessDescriptor, ListingPage, ListRequest, ObjectMetadata, TransferResult


class S3ClientProtocol(Protocol):
    """Subset of the boto3 S3 client used by the S3 storage provider."""

    def list_objects_v2(self, **kwargs: Any) -> Dict[str, Any]:
        """List one page of objects."""
        ...

    def head_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Fetch object metadata."""
        ...

    def get_object_acl(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Fetch the object's access-control list."""
        ...

    def copy_object(self, **kwargs: Any) -> Dict[str, Any]:
        """Server-side copy."""
        ...

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object from S3."""
        ...

    def upload_fileobj(
        self, Fileobj: BinaryIO, Bucket: str, Key: str, ExtraArgs: Optional[Dict[str, Any]] = None
    ) -> None:
        """Streamed upload."""
        ...

    def delete_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Delete object from S3."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


class StorageProvider(ABC):
    """Capability interface over one storage backend.

    Implementations raise ObjectNotFoundError for absent keys and
    StorageError for everything else; they never retry at this level.
    """

    name: str = "storage"

    @abstractmethod
    def list(self, request: ListRequest) -> ListingPage:
        """Return at most ``request.fetch_size`` entries after the cursor."""
        ...

    @abstractmethod
    def get_metadata(self, container: str, key: str) -> ObjectMetadata:
        """Return size, identity tag and reconstructable metadata."""
        ...

    @abstractmethod
    def get_access_descriptor(self, container: str, key: str) -> AccessDescriptor:
        """Return the access-control state to replicate."""
        ...

    @abstractmethod
    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        """Copy an object within this backend, metadata and ACL included."""
        ...

    @abstractmethod
    def open_object(self, container: str, key: str) -> BinaryIO:
        """Open an object for streaming reads."""
        ...

    @abstractmethod
    def put_object(
        self,
        container: str,
        key: str,
        body: BinaryIO,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        """Write an object from a stream, metadata and ACL included."""
        ...

    @abstractmethod
    def delete(self, container: str, key: str) -> None:
        """Remove an object."""
        ...

    def shares_backend(self, other: "StorageProvider") -> bool:
        """True when ``other`` can reach this provider's objects with a native copy."""
        return other is self

    def copy_from(
        self,
        source: "StorageProvider",
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        """
        Transfer an object from ``source`` into this provider.

        Providers sharing a backend use its native copy; anything else
        streams the source object through ``put_object``.
        """
        if self.shares_backend(source):
            self.copy(source_container, source_key, dest_container, dest_key, metadata, access)
            return
        body = source.open_object(source_container, source_key)
        try:
            self.put_object(dest_container, dest_key, body, metadata, access)
        finally:
            body.close()


class MirrorJob(ABC):
    """A unit of work executed by the scheduler."""

    key: str

    @abstractmethod
    def run(self) -> TransferResult:
        """Run to a terminal outcome. Never raises for per-key failures."""
        ...
