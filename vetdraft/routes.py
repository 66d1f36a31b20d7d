"""
HTTP routes for restoring autosaved media.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from vetdraft.autosave import AutosaveStore
from vetdraft.config import Settings, get_settings
from vetdraft.dependencies import get_autosave_store, get_storage_client
from vetdraft.errors import (
    BlobNotFoundError,
    DraftNotFoundError,
    MediaNotFoundError,
    StorageError,
    guarded,
)
from vetdraft.models import DEFAULT_PATIENT_ID, DraftIdentity, MediaReference
from vetdraft.schemas import RestoreRequest, SignUrlResponse
from vetdraft.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()


def content_disposition(filename: str) -> str:
    # RFC 5987 form; quote() with no safe characters also escapes !'()*
    return f"inline; filename*=UTF-8''{quote(filename, safe='')}"


@guarded("restore")
async def _fetch_autosaved_file(
    identity: DraftIdentity,
    file_id: str,
    store: AutosaveStore,
    storage: StorageClient,
) -> tuple[MediaReference, bytes]:
    record = await store.get_record(identity)
    if record is None:
        raise DraftNotFoundError(f"No autosave draft for {identity.as_key()}")

    entry = next(
        (item for item in record.media_files if str(item.get("id")) == file_id),
        None,
    )
    if entry is None:
        logger.warning(
            "File ref %s not found; available ids: %s",
            file_id,
            [item.get("id") for item in record.media_files],
        )
        raise MediaNotFoundError(file_id)

    ref = MediaReference.from_dict(entry)
    data = await asyncio.to_thread(storage.get_bytes, ref.storage_path)
    return ref, data


@router.post("/autosave-restore")
async def autosave_restore(
    payload: RestoreRequest,
    store: AutosaveStore = Depends(get_autosave_store),
    storage: StorageClient = Depends(get_storage_client),
):
    """
    Stream an autosaved media file back so the form can re-attach it.
    """
    if not payload.file_id or not payload.user_id:
        raise HTTPException(status_code=400, detail="Missing required parameters")

    identity = DraftIdentity(
        payload.form_id,
        payload.user_id,
        payload.patient_id or DEFAULT_PATIENT_ID,
    )
    try:
        ref, data = await _fetch_autosaved_file(
            identity, payload.file_id, store, storage
        )
    except DraftNotFoundError:
        raise HTTPException(status_code=404, detail="Autosave data not found")
    except MediaNotFoundError:
        raise HTTPException(
            status_code=404, detail="File not found in autosave data"
        )
    except BlobNotFoundError:
        raise HTTPException(status_code=404, detail="File not found in storage")
    except Exception:
        logger.exception("Error restoring autosave file %s", payload.file_id)
        raise HTTPException(status_code=500, detail="Internal server error")

    return Response(
        content=data,
        media_type=ref.content_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(ref.original_name)},
    )


@router.get("/autosave-media/sign-url", response_model=SignUrlResponse)
def sign_url(
    path: str = Query(..., description="Object path in the autosave bucket"),
    expires_in: Optional[int] = Query(None, ge=60, le=86400),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_settings),
):
    try:
        url = storage.presign_get(
            path, expires_in=expires_in or settings.autosave_signed_url_ttl
        )
    except StorageError:
        logger.exception("Error signing autosave media %s", path)
        raise HTTPException(status_code=500, detail="Internal server error")
    return SignUrlResponse(url=url)
