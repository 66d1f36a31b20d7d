"""
Dependency wiring for the FastAPI app and draft controllers.
"""

from __future__ import annotations

from vetdraft.autosave import AutosaveStore
from vetdraft.config import Settings, get_settings
from vetdraft.db import DraftStore, InMemoryDraftStore, PostgresDraftStore
from vetdraft.storage import InMemoryStorageClient, S3StorageClient, StorageClient

_draft_store: DraftStore | None = None
_storage_client: StorageClient | None = None


def get_draft_store() -> DraftStore:
    """
    Return a singleton draft store so drafts persist across requests.
    """
    global _draft_store
    if _draft_store:
        return _draft_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _draft_store = InMemoryDraftStore()
    else:
        _draft_store = PostgresDraftStore(settings.database_url)
    return _draft_store


def _s3_configured(settings: Settings) -> bool:
    # Plain AWS needs no endpoint; a region or key pair is enough.
    return bool(
        settings.s3_endpoint or settings.s3_region or settings.aws_access_key_id
    )


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not _s3_configured(settings):
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.autosave_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_autosave_store() -> AutosaveStore:
    return AutosaveStore(get_draft_store())
