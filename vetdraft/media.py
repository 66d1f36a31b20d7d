"""
Media attached to an in-progress draft.

The manager owns the blobs it uploads and the in-memory list of references to
them. It never writes the draft record itself; the controller persists the
reference list on its next save.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from typing import Callable, Iterable, Optional

from vetdraft.errors import MediaDeleteError, UploadTimeoutError, guarded
from vetdraft.models import BulkDeleteResult, DraftIdentity, MediaFile, MediaReference
from vetdraft.storage import StorageClient

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_TIMEOUT_SECONDS = 30.0
DEFAULT_SIGNED_URL_TTL = 3600


def build_storage_path(identity: DraftIdentity, timestamp_ms: int, extension: str) -> str:
    form_id, user_id, patient_id = identity.as_key()
    return f"{form_id}_{user_id}_{patient_id}_{timestamp_ms}.{extension}"


def _log_abandoned_upload(path: str, task: asyncio.Future) -> None:
    if task.cancelled():
        return
    if task.exception() is not None:
        logger.info("Abandoned upload %s failed after timeout: %s", path, task.exception())
        return
    # Nothing references this blob any more.
    logger.warning("Abandoned upload %s completed after timeout; blob is orphaned", path)


class MediaAttachmentManager:
    def __init__(
        self,
        storage: StorageClient,
        identity: DraftIdentity,
        *,
        upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS,
        signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.storage = storage
        self.identity = identity
        self.upload_timeout = upload_timeout
        self.signed_url_ttl = signed_url_ttl
        self._clock = clock or time.time
        self._refs: list[MediaReference] = []
        self._last_timestamp_ms = 0

    @property
    def media_refs(self) -> tuple[MediaReference, ...]:
        return tuple(self._refs)

    def get(self, file_id: str) -> Optional[MediaReference]:
        for ref in self._refs:
            if ref.id == file_id:
                return ref
        return None

    def replace(self, refs: Iterable[MediaReference]) -> None:
        self._refs = list(refs)
        for ref in self._refs:
            if ref.id.isdigit():
                self._last_timestamp_ms = max(self._last_timestamp_ms, int(ref.id))

    def reset(self) -> None:
        self._refs = []

    def retain(self, paths: Iterable[str]) -> None:
        """Keep only the references whose blob is at one of ``paths``."""
        keep = set(paths)
        self._refs = [ref for ref in self._refs if ref.storage_path in keep]

    def _next_timestamp_ms(self) -> int:
        now = int(self._clock() * 1000)
        if now <= self._last_timestamp_ms:
            now = self._last_timestamp_ms + 1
        self._last_timestamp_ms = now
        return now

    @guarded("media.upload")
    async def upload(
        self, file: Optional[MediaFile], metadata: Optional[dict] = None
    ) -> Optional[MediaReference]:
        if not self.identity.is_complete or file is None or not file.is_valid():
            return None

        timestamp_ms = self._next_timestamp_ms()
        path = build_storage_path(self.identity, timestamp_ms, file.extension)

        upload = asyncio.ensure_future(
            asyncio.to_thread(
                self.storage.upload_bytes, path, bytes(file.data), file.content_type
            )
        )
        # asyncio.wait leaves the upload running when the deadline passes.
        done, _ = await asyncio.wait({upload}, timeout=self.upload_timeout)
        if upload not in done:
            upload.add_done_callback(functools.partial(_log_abandoned_upload, path))
            raise UploadTimeoutError(
                f"Upload timeout after {self.upload_timeout:g} seconds: {path}"
            )
        upload.result()

        ref = MediaReference(
            id=str(timestamp_ms),
            storage_path=path,
            original_name=file.name,
            size=file.size,
            content_type=file.content_type,
            metadata=dict(metadata or {}),
        )
        self._refs.append(ref)
        logger.info("Uploaded autosave media %s (%d bytes)", path, file.size)
        return ref

    @guarded("media.remove")
    async def remove(self, file_id: str) -> None:
        if not self.identity.is_complete or not file_id:
            return
        ref = self.get(file_id)
        if ref is None:
            return

        failure: Optional[Exception] = None
        try:
            await asyncio.to_thread(self.storage.delete, ref.storage_path)
        except Exception as exc:
            failure = exc
        # The reference goes away locally whatever the blob store said.
        self._refs = [r for r in self._refs if r.id != file_id]
        if failure is not None:
            raise MediaDeleteError(
                f"Failed to delete blob {ref.storage_path}: {failure}"
            ) from failure
        logger.info("Removed autosave media %s", ref.storage_path)

    @guarded("media.remove_all")
    async def _delete_many(self, paths: list[str]) -> BulkDeleteResult:
        return await asyncio.to_thread(self.storage.delete_many, paths)

    async def remove_all(self) -> BulkDeleteResult:
        """Delete every referenced blob in one request. The list is left as is."""
        paths = [ref.storage_path for ref in self._refs]
        if not paths:
            return BulkDeleteResult()
        result = await self._delete_many(paths)
        if result is None:
            result = BulkDeleteResult(requested=len(paths), failed=list(paths))
        if result.failed:
            logger.warning(
                "Bulk delete removed %d of %d autosave blobs; failed: %s",
                result.deleted,
                result.requested,
                result.failed,
            )
        return result

    @guarded("media.signed_url")
    async def signed_url(
        self, ref: Optional[MediaReference], ttl: Optional[int] = None
    ) -> Optional[str]:
        if ref is None or not ref.storage_path:
            return None
        return await asyncio.to_thread(
            self.storage.presign_get, ref.storage_path, ttl or self.signed_url_ttl
        )
