"""
Blob storage for autosaved media: S3-compatible backend and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Protocol
import logging

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from vetdraft.errors import BlobExistsError, BlobNotFoundError, StorageError
from vetdraft.models import BulkDeleteResult

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most this many keys per request.
MAX_DELETE_BATCH = 1000


class StorageClient(Protocol):
    """Defines the operations autosave needs from the blob store."""

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        ...

    def get_bytes(self, path: str) -> bytes:
        ...

    def delete(self, path: str) -> None:
        ...

    def delete_many(self, paths: Iterable[str]) -> BulkDeleteResult:
        ...

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for blob storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None
    content_types: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}
        if self.content_types is None:
            self.content_types = {}

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        if path in self.stored_objects:
            raise BlobExistsError(path)
        self.stored_objects[path] = bytes(data)
        self.content_types[path] = content_type

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise BlobNotFoundError(path)
        return stored

    def delete(self, path: str) -> None:
        self.stored_objects.pop(path, None)
        self.content_types.pop(path, None)

    def delete_many(self, paths: Iterable[str]) -> BulkDeleteResult:
        result = BulkDeleteResult()
        for path in paths:
            result.requested += 1
            self.delete(path)
            result.deleted += 1
        return result

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        return f"{self.base_url}/{path}?op=get&expires={expires_in}"

    def reset(self) -> None:
        """Clear all stored blobs (useful in tests)."""
        self.stored_objects.clear()
        self.content_types.clear()


def _translate_client_error(path: str, exc: ClientError) -> StorageError:
    code = exc.response.get("Error", {}).get("Code", "")
    if code in ("NoSuchKey", "404", "NotFound"):
        return BlobNotFoundError(path)
    if code in ("PreconditionFailed", "412"):
        return BlobExistsError(path)
    return StorageError(f"{code or 'ClientError'} for {path}: {exc}")


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client for the autosave bucket.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

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

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        # IfNoneMatch makes the write fail rather than overwrite an existing blob.
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
                CacheControl="max-age=3600",
                IfNoneMatch="*",
            )
        except ClientError as exc:
            raise _translate_client_error(path, exc) from exc
        except BotoCoreError as exc:
            raise StorageError(f"upload failed for {path}: {exc}") from exc

    def get_bytes(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            raise _translate_client_error(path, exc) from exc
        except BotoCoreError as exc:
            raise StorageError(f"download failed for {path}: {exc}") from exc
        return response["Body"].read()

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            raise _translate_client_error(path, exc) from exc
        except BotoCoreError as exc:
            raise StorageError(f"delete failed for {path}: {exc}") from exc

    def delete_many(self, paths: Iterable[str]) -> BulkDeleteResult:
        keys = list(paths)
        result = BulkDeleteResult(requested=len(keys))
        for start in range(0, len(keys), MAX_DELETE_BATCH):
            batch = keys[start : start + MAX_DELETE_BATCH]
            try:
                response = self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": False},
                )
            except (ClientError, BotoCoreError):
                logger.exception("Bulk delete of %d blobs failed", len(batch))
                result.failed.extend(batch)
                continue
            result.deleted += len(response.get("Deleted", []))
            for error in response.get("Errors", []):
                logger.warning(
                    "Failed to delete blob %s: %s", error.get("Key"), error.get("Message")
                )
                result.failed.append(error.get("Key", ""))
        return result

    def presign_get(self, path: str, expires_in: int = 3600) -> str:
        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"could not sign {path}: {exc}") from exc
