"""
Object storage gateway: pre-signed upload/view URLs for submission files.

Files never pass through this service. A client asks for a signed PUT URL,
uploads straight to the bucket, and only then links the returned file key
to a submission.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import uuid4

from challenge_backend.storage import StorageClient, StorageError
from challenge_backend.types import FieldError, Messages

logger = logging.getLogger(__name__)

PRESIGN_EXPIRES_SECONDS = 120
DEFAULT_FOLDER = "misc"


@dataclass
class SignedUrlResult:
    signed_url: Optional[str] = None
    file_key: Optional[str] = None
    errors: List[FieldError] = field(default_factory=list)


def clean_file_name(file_name: str) -> str:
    return re.sub(r"\s+", "", file_name or "")


def build_file_key(file_name: str, path: Optional[str]) -> str:
    """`{folder}/{uuid}-{file name without whitespace}`; "/" or empty means misc."""
    folder = (path or "").strip().strip("/")
    return f"{folder or DEFAULT_FOLDER}/{uuid4()}-{clean_file_name(file_name)}"


def resolve_content_type(file_type: Optional[str]) -> Optional[str]:
    if not file_type:
        return None
    if "/" in file_type:
        return file_type
    guessed, _ = mimetypes.guess_type(f"upload.{file_type.lstrip('.')}")
    return guessed


def _presign_error(reason: object) -> FieldError:
    return FieldError(
        field="signedUrl",
        message=f"Error: could not generate S3 presigned url - {reason}",
    )


class ObjectStorageGateway:
    def __init__(
        self, storage: StorageClient, expires_in: int = PRESIGN_EXPIRES_SECONDS
    ):
        self.storage = storage
        self.expires_in = expires_in

    def get_upload_url(
        self,
        file_name: str,
        path: Optional[str],
        metadata: Optional[dict] = None,
        file_type: Optional[str] = None,
    ) -> SignedUrlResult:
        file_key = build_file_key(file_name, path)
        try:
            url = self.storage.presign_put(
                file_key,
                expires_in=self.expires_in,
                metadata=metadata,
                content_type=resolve_content_type(file_type),
            )
        except StorageError as exc:
            logger.warning("Upload URL generation failed for %s: %s", file_key, exc)
            return SignedUrlResult(errors=[_presign_error(exc)])
        return SignedUrlResult(signed_url=url, file_key=file_key)

    def get_view_url(self, file_key: str) -> SignedUrlResult:
        try:
            url = self.storage.presign_get(file_key, expires_in=self.expires_in)
        except StorageError as exc:
            logger.warning("View URL generation failed for %s: %s", file_key, exc)
            return SignedUrlResult(errors=[_presign_error(exc)])
        return SignedUrlResult(signed_url=url, file_key=file_key)

    def delete_object(self, file_key: str) -> Messages:
        """Delete a stored file. Failures are reported, never raised."""
        try:
            self.storage.delete_object(file_key)
        except StorageError as exc:
            logger.warning("Failed to delete %s: %s", file_key, exc)
            return Messages(
                errors=[FieldError(field="Delete File", message="Delete failed.")]
            )
        return Messages(
            success=[
                FieldError(
                    field="Delete File",
                    message="Successfully deleted previous file.",
                )
            ]
        )
