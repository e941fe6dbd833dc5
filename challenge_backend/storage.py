"""
Storage abstraction for S3 object storage and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError


class StorageError(Exception):
    """Raised when the object store rejects or cannot serve a request."""


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def presign_get(self, path: str, expires_in: int = 120) -> str:
        ...

    def presign_put(
        self,
        path: str,
        expires_in: int = 120,
        *,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> str:
        ...

    def delete_object(self, path: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None
    object_metadata: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.object_metadata is None:
            self.object_metadata = {}

    def presign_get(self, path: str, expires_in: int = 120) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def presign_put(
        self,
        path: str,
        expires_in: int = 120,
        *,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> str:
        # Remember what the uploader was told to send.
        self.object_metadata[path] = dict(metadata or {})
        return f"{self.base_url}/{path}?op=put&expires={expires_in}"

    def put_bytes(self, path: str, payload: bytes) -> None:
        """Simulate the client-side upload through a pre-signed URL."""
        self.stored_objects[path] = payload

    def delete_object(self, path: str) -> None:
        self.stored_objects.pop(path, None)
        self.object_metadata.pop(path, None)


@dataclass
class S3StorageClient:
    """
    S3 storage client. Works with any S3-compatible endpoint.
    """

    bucket: str
    region: str
    access_key_id: str
    secret_access_key: str
    endpoint: str = ""

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def presign_get(self, path: str, expires_in: int = 120) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc

    def presign_put(
        self,
        path: str,
        expires_in: int = 120,
        *,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> str:
        params = {"Bucket": self.bucket, "Key": path}
        if metadata:
            # S3 user metadata is string-only.
            params["Metadata"] = {str(k): str(v) for k, v in metadata.items()}
        if content_type:
            params["ContentType"] = content_type
        try:
            return self._client.generate_presigned_url(
                ClientMethod="put_object",
                Params=params,
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc

    def delete_object(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(str(exc)) from exc
