"""Factory classes for creating configured service instances."""

import threading
from typing import Any, Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from pydantic import BaseModel

from .engine import MirrorEngine
from .exceptions import ConfigurationError
from .models import MirrorConfig
from .observability import create_logger
from .protocols import LoggerProtocol, S3ClientProtocol, StorageProvider
from ..storage.local import LocalStorageProvider
from ..storage.s3 import S3StorageProvider

S3_SCHEME = "s3"
LOCAL_SCHEME = "file"


class Location(BaseModel):
    """A parsed SOURCE or DESTINATION argument."""

    scheme: str
    container: str
    prefix: Optional[str] = None

    def __str__(self) -> str:
        if self.scheme == S3_SCHEME:
            return f"s3://{self.container}/{self.prefix or ''}"
        return self.container


def parse_location(value: str) -> Location:
    """
    Parse ``s3://bucket/prefix``, ``file:///path`` or a plain directory path.

    Raises:
        ConfigurationError: If an S3 location has no bucket name.
    """
    parsed = urlparse(value)
    if parsed.scheme == S3_SCHEME:
        if not parsed.netloc:
            raise ConfigurationError(f"missing bucket name in {value!r}")
        prefix = parsed.path.lstrip("/")
        return Location(scheme=S3_SCHEME, container=parsed.netloc, prefix=prefix or None)
    if parsed.scheme == LOCAL_SCHEME:
        return Location(scheme=LOCAL_SCHEME, container=parsed.path)
    if parsed.scheme and len(parsed.scheme) > 1:
        raise ConfigurationError(f"unsupported location scheme: {parsed.scheme}://")
    return Location(scheme=LOCAL_SCHEME, container=value)


class S3ClientFactory:
    """Factory for creating S3 client instances."""

    @staticmethod
    def create_s3_client(
        max_pool_connections: int = 10,
        max_attempts: int = 3,
        profile_name: Optional[str] = None,
        **kwargs: Any,
    ) -> S3ClientProtocol:
        """Create S3 client with a connection pool sized for the worker count."""
        session = boto3.Session(profile_name=profile_name)
        config = BotoConfig(
            max_pool_connections=max_pool_connections,
            retries={"max_attempts": max_attempts, "mode": "standard"},
        )
        return session.client("s3", config=config, **kwargs)  # type: ignore


class StorageProviderFactory:
    """Factory for creating storage providers."""

    @staticmethod
    def create_provider(
        scheme: str, s3_client: Optional[S3ClientProtocol] = None
    ) -> StorageProvider:
        if scheme == S3_SCHEME:
            if s3_client is None:
                s3_client = S3ClientFactory.create_s3_client()
            return S3StorageProvider(s3_client)
        if scheme == LOCAL_SCHEME:
            return LocalStorageProvider()
        raise ConfigurationError(f"unsupported storage scheme: {scheme}")


class MirrorPipelineFactory:
    """Factory for creating the complete mirror pipeline."""

    @staticmethod
    def create_engine(
        config: MirrorConfig,
        source_scheme: str = S3_SCHEME,
        dest_scheme: str = S3_SCHEME,
        s3_client: Optional[S3ClientProtocol] = None,
        logger: Optional[LoggerProtocol] = None,
        cancel_event: Optional[threading.Event] = None,
        client_options: Optional[dict] = None,
    ) -> MirrorEngine:
        """Create a fully configured mirror engine.

        Both sides share one provider when they use the same backend, so S3
        to S3 mirrors use server-side copies.
        """
        if s3_client is None and S3_SCHEME in (source_scheme, dest_scheme):
            s3_client = S3ClientFactory.create_s3_client(
                max_pool_connections=config.max_parallelism, **(client_options or {})
            )

        if logger is None:
            logger = create_logger("bucket-mirror", verbose=config.verbose)

        source = StorageProviderFactory.create_provider(source_scheme, s3_client)
        if dest_scheme == source_scheme:
            destination = source
        else:
            destination = StorageProviderFactory.create_provider(dest_scheme, s3_client)

        return MirrorEngine(
            source=source,
            destination=destination,
            config=config,
            logger=logger,
            cancel_event=cancel_event,
        )
