"""Local filesystem storage provider - a directory tree as a container."""

import hashlib
import mimetypes
import os
import shutil
import tempfile
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, Optional

from ..core.exceptions import ObjectNotFoundError, StorageError
from ..core.models import (
    AccessDescriptor,
    ListingPage,
    ListRequest,
    ObjectMetadata,
    ObjectSummary,
)
from ..core.protocols import StorageProvider

TEMP_PREFIX = ".bucket-mirror-"
_CHUNK_SIZE = 1024 * 1024
EMPTY_MD5 = hashlib.md5(b"").hexdigest()


def is_directory_key(key: str) -> bool:
    """S3 consoles create zero-byte "folder" objects whose key ends in a slash."""
    return key.endswith("/")


def file_md5(path: str) -> str:
    """MD5 hex digest of a file, the same tag S3 reports for simple uploads."""
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class LocalStorageProvider(StorageProvider):
    """Storage provider over local directories.

    The container is the root directory path and keys are ``/``-separated
    paths relative to it. Listings come out in lexicographic key order and
    the cursor is the last key returned, so each page resumes the walk
    without holding the whole tree in memory.
    """

    name = "local"

    def get_path(self, container: str, key: str) -> str:
        root = os.path.abspath(container)
        path = os.path.abspath(os.path.join(root, *key.split("/")))
        if path != root and not path.startswith(root + os.sep):
            raise StorageError(f"key escapes container {container}: {key}")
        return path

    def _iter_keys(self, root: str, rel_dir: str, prefix: str, after: Optional[str]) -> Iterator[str]:
        directory = os.path.join(root, *rel_dir.split("/")) if rel_dir else root
        try:
            entries = list(os.scandir(directory))
        except (FileNotFoundError, NotADirectoryError):
            return

        # Directories sort as "name/" so the walk yields keys in the same
        # order a plain string sort of the full keys would.
        named = []
        for entry in entries:
            if entry.name.startswith(TEMP_PREFIX):
                continue
            key = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
            if entry.is_dir(follow_symlinks=False):
                named.append((key + "/", key, True))
            elif entry.is_file():
                named.append((key, key, False))
        named.sort()

        for sort_key, key, is_dir in named:
            if is_dir:
                if not (sort_key.startswith(prefix) or prefix.startswith(sort_key)):
                    continue
                if after is not None and sort_key < after and not after.startswith(sort_key):
                    continue
                yield from self._iter_keys(root, key, prefix, after)
            else:
                if not key.startswith(prefix):
                    continue
                if after is not None and key <= after:
                    continue
                yield key

    def _summary(self, root: str, key: str) -> Optional[ObjectSummary]:
        path = self.get_path(root, key)
        try:
            stat = os.stat(path)
            etag = file_md5(path)
        except FileNotFoundError:
            # removed between the directory scan and the stat
            return None
        return ObjectSummary(
            key=key,
            size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            etag=etag,
        )

    def list(self, request: ListRequest) -> ListingPage:
        root = os.path.abspath(request.container)
        if not os.path.isdir(root):
            raise StorageError(f"not a directory: {root}")

        summaries = []
        has_more = False
        try:
            for key in self._iter_keys(root, "", request.prefix, request.cursor):
                if len(summaries) >= request.fetch_size:
                    has_more = True
                    break
                summary = self._summary(root, key)
                if summary is not None:
                    summaries.append(summary)
        except OSError as e:
            raise StorageError(f"listing {root} failed: {e}") from e

        next_cursor = summaries[-1].key if summaries else request.cursor
        return ListingPage(summaries=summaries, has_more=has_more, next_cursor=next_cursor)

    def get_metadata(self, container: str, key: str) -> ObjectMetadata:
        path = self.get_path(container, key)
        if is_directory_key(key) and os.path.isdir(path):
            # a folder marker is mirrored as a directory, identical to an empty object
            stat = os.stat(path)
            return ObjectMetadata(
                size=0,
                etag=EMPTY_MD5,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        try:
            if os.path.isdir(path):
                raise ObjectNotFoundError(f"{path} is a directory", status_code=404)
            stat = os.stat(path)
            etag = file_md5(path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise ObjectNotFoundError(f"no such file: {path}", status_code=404) from e
        except OSError as e:
            raise StorageError(f"stat {path} failed: {e}") from e

        content_type, content_encoding = mimetypes.guess_type(path)
        return ObjectMetadata(
            size=stat.st_size,
            etag=etag,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            content_type=content_type,
            content_encoding=content_encoding,
        )

    def get_access_descriptor(self, container: str, key: str) -> AccessDescriptor:
        path = self.get_path(container, key)
        if not os.path.isfile(path):
            raise ObjectNotFoundError(f"no such file: {path}", status_code=404)
        # File modes do not map onto object grants.
        return AccessDescriptor.empty()

    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        body = self.open_object(source_container, source_key)
        try:
            self.put_object(dest_container, dest_key, body, metadata, access)
        finally:
            body.close()

    def open_object(self, container: str, key: str) -> BinaryIO:
        path = self.get_path(container, key)
        try:
            return open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise ObjectNotFoundError(f"no such file: {path}", status_code=404) from e
        except OSError as e:
            raise StorageError(f"open {path} failed: {e}") from e

    def put_object(
        self,
        container: str,
        key: str,
        body: BinaryIO,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        path = self.get_path(container, key)
        if is_directory_key(key):
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                raise StorageError(f"creating directory {path} failed: {e}") from e
            return
        directory = os.path.dirname(path)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=directory, prefix=TEMP_PREFIX, delete=False) as tmp:
                tmp_path = tmp.name
                shutil.copyfileobj(body, tmp, _CHUNK_SIZE)
            if metadata.last_modified is not None:
                mtime = metadata.last_modified.timestamp()
                os.utime(tmp_path, (mtime, mtime))
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            raise StorageError(f"writing {path} failed: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)

    def delete(self, container: str, key: str) -> None:
        path = self.get_path(container, key)
        try:
            os.remove(path)
        except FileNotFoundError as e:
            raise ObjectNotFoundError(f"no such file: {path}", status_code=404) from e
        except OSError as e:
            raise StorageError(f"removing {path} failed: {e}") from e
