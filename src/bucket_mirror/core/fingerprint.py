"""Content identity used to decide whether a transfer is needed."""

from typing import NamedTuple, Union

from .models import ObjectMetadata, ObjectSummary


class Fingerprint(NamedTuple):
    """(size, identity tag) pair. Equality is exact on both fields.

    The identity tag is whatever the backend reports (an S3 ETag, an MD5 hex
    digest for local files). For multipart S3 uploads the ETag is not a plain
    content hash, so two copies of the same bytes uploaded with different
    part sizes compare as different and get copied again.
    """

    size: int
    etag: str

    @classmethod
    def of(cls, obj: Union[ObjectSummary, ObjectMetadata]) -> "Fingerprint":
        return cls(obj.size, obj.etag)


def fingerprint(size: int, etag: str) -> Fingerprint:
    return Fingerprint(size, etag)


def fingerprints_equal(a: Fingerprint, b: Fingerprint) -> bool:
    return a.size == b.size and a.etag == b.etag
