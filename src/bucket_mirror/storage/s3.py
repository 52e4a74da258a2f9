"""S3 storage provider - boto3 client calls, one remote call per method."""

from typing import Any, BinaryIO, Dict, List, Optional

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

# Conditional import for type checking S3 client
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from mypy_boto3_s3.client import S3Client
else:
    S3Client = Any

from ..core.error_handling import translate_client_error
from ..core.models import (
    AccessDescriptor,
    Grant,
    ListingPage,
    ListRequest,
    ObjectMetadata,
    ObjectSummary,
)
from ..core.protocols import StorageProvider

# Grant permission -> copy_object/upload argument. WRITE has no meaning on
# objects and is dropped.
GRANT_ARGUMENTS = {
    "FULL_CONTROL": "GrantFullControl",
    "READ": "GrantRead",
    "READ_ACP": "GrantReadACP",
    "WRITE_ACP": "GrantWriteACP",
}

_GRANTEE_FIELDS = {
    "CanonicalUser": ("ID", "id"),
    "Group": ("URI", "uri"),
    "AmazonCustomerByEmail": ("EmailAddress", "emailAddress"),
}


def strip_etag(etag: Optional[str]) -> str:
    """S3 returns ETags wrapped in double quotes."""
    return (etag or "").strip('"')


def metadata_arguments(metadata: ObjectMetadata) -> Dict[str, Any]:
    """Translate ObjectMetadata into boto3 request arguments."""
    args: Dict[str, Any] = {"Metadata": dict(metadata.user_metadata)}
    optional = {
        "ContentType": metadata.content_type,
        "CacheControl": metadata.cache_control,
        "ContentDisposition": metadata.content_disposition,
        "ContentEncoding": metadata.content_encoding,
        "ContentLanguage": metadata.content_language,
        "ServerSideEncryption": metadata.server_side_encryption,
    }
    args.update({name: value for name, value in optional.items() if value})
    return args


def grant_arguments(access: AccessDescriptor) -> Dict[str, str]:
    """Translate an AccessDescriptor into Grant* header arguments."""
    grouped: Dict[str, List[str]] = {}
    for grant in access.grants:
        argument = GRANT_ARGUMENTS.get(grant.permission)
        field = _GRANTEE_FIELDS.get(grant.grantee_type)
        if argument is None or field is None:
            continue
        grouped.setdefault(argument, []).append(f'{field[1]}="{grant.grantee}"')
    return {argument: ", ".join(values) for argument, values in grouped.items()}


def parse_acl_response(response: Dict[str, Any]) -> AccessDescriptor:
    grants = []
    for entry in response.get("Grants", []):
        grantee = entry.get("Grantee", {})
        grantee_type = grantee.get("Type", "")
        field = _GRANTEE_FIELDS.get(grantee_type)
        if field is None or field[0] not in grantee:
            continue
        grants.append(
            Grant(
                grantee_type=grantee_type,
                grantee=grantee[field[0]],
                permission=entry.get("Permission", ""),
            )
        )
    return AccessDescriptor(owner_id=response.get("Owner", {}).get("ID"), grants=grants)


class S3StorageProvider(StorageProvider):
    """Storage provider backed by an S3 (or S3-compatible) endpoint.

    boto3 clients are thread-safe, so one provider instance is shared by
    every worker thread.
    """

    name = "s3"

    def __init__(self, s3_client: S3Client):
        self._client = s3_client

    @property
    def client(self) -> S3Client:
        return self._client

    def shares_backend(self, other: StorageProvider) -> bool:
        return isinstance(other, S3StorageProvider) and other.client is self._client

    def list(self, request: ListRequest) -> ListingPage:
        params: Dict[str, Any] = {
            "Bucket": request.container,
            "MaxKeys": request.fetch_size,
        }
        if request.prefix:
            params["Prefix"] = request.prefix
        if request.cursor:
            params["ContinuationToken"] = request.cursor

        try:
            response = self._client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "list_objects_v2", request.container, request.prefix) from e

        summaries = [
            ObjectSummary(
                key=obj["Key"],
                size=obj.get("Size", 0),
                last_modified=obj.get("LastModified"),
                etag=strip_etag(obj.get("ETag")),
            )
            for obj in response.get("Contents", [])
        ]
        next_cursor = response.get("NextContinuationToken")
        return ListingPage(
            summaries=summaries,
            has_more=bool(response.get("IsTruncated")) and bool(next_cursor),
            next_cursor=next_cursor,
        )

    def get_metadata(self, container: str, key: str) -> ObjectMetadata:
        try:
            response = self._client.head_object(Bucket=container, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "head_object", container, key) from e

        return ObjectMetadata(
            size=response.get("ContentLength", 0),
            etag=strip_etag(response.get("ETag")),
            last_modified=response.get("LastModified"),
            content_type=response.get("ContentType"),
            cache_control=response.get("CacheControl"),
            content_disposition=response.get("ContentDisposition"),
            content_encoding=response.get("ContentEncoding"),
            content_language=response.get("ContentLanguage"),
            user_metadata=response.get("Metadata", {}),
            server_side_encryption=response.get("ServerSideEncryption"),
        )

    def get_access_descriptor(self, container: str, key: str) -> AccessDescriptor:
        try:
            response = self._client.get_object_acl(Bucket=container, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "get_object_acl", container, key) from e
        return parse_acl_response(response)

    def copy(
        self,
        source_container: str,
        source_key: str,
        dest_container: str,
        dest_key: str,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        try:
            self._client.copy_object(
                Bucket=dest_container,
                Key=dest_key,
                CopySource={"Bucket": source_container, "Key": source_key},
                MetadataDirective="REPLACE",
                **metadata_arguments(metadata),
                **grant_arguments(access),
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "copy_object", dest_container, dest_key) from e

    def open_object(self, container: str, key: str) -> BinaryIO:
        try:
            response = self._client.get_object(Bucket=container, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "get_object", container, key) from e
        return response["Body"]

    def put_object(
        self,
        container: str,
        key: str,
        body: BinaryIO,
        metadata: ObjectMetadata,
        access: AccessDescriptor,
    ) -> None:
        extra_args = {**metadata_arguments(metadata), **grant_arguments(access)}
        try:
            self._client.upload_fileobj(
                Fileobj=body, Bucket=container, Key=key, ExtraArgs=extra_args
            )
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            raise translate_client_error(e, "upload_fileobj", container, key) from e

    def delete(self, container: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=container, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "delete_object", container, key) from e
