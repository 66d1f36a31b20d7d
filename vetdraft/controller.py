"""
Form draft controller: load on activation, debounced autosave, clear on submit.

The controller starts UNLOADED and only arms its mutation watch once the
initial load has finished, so a save can never replace a persisted draft with
the form's initial values.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import MutableMapping
from typing import Any, Callable, Iterator, Mapping, Optional

from vetdraft.autosave import AutosaveStore
from vetdraft.config import get_settings
from vetdraft.dependencies import get_draft_store, get_storage_client
from vetdraft.media import MediaAttachmentManager
from vetdraft.models import (
    DEFAULT_PATIENT_ID,
    DraftIdentity,
    MediaFile,
    MediaReference,
)
from vetdraft.scheduler import DEFAULT_DELAY_SECONDS, DebounceScheduler

logger = logging.getLogger(__name__)


class DraftState(enum.Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


class TrackedFields(MutableMapping):
    """Dict of form fields that reports every top-level mutation."""

    def __init__(self, initial: Mapping[str, Any], on_change: Callable[[], None]):
        self._data: dict[str, Any] = dict(initial)
        self._on_change = on_change

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._on_change()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._on_change()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"TrackedFields({self._data!r})"

    def update(self, *args, **kwargs) -> None:
        self._data.update(*args, **kwargs)
        self._on_change()

    def replace(self, data: Mapping[str, Any]) -> None:
        """Swap the contents without reporting a change."""
        self._data = dict(data)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._data)


class FormDraftController:
    def __init__(
        self,
        identity: DraftIdentity,
        store: AutosaveStore,
        media: MediaAttachmentManager,
        *,
        initial_fields: Optional[Mapping[str, Any]] = None,
        debounce_seconds: float = DEFAULT_DELAY_SECONDS,
    ):
        self.identity = identity
        self.store = store
        self.media = media
        self.state = DraftState.UNLOADED
        self._initial_fields = dict(initial_fields or {})
        self._fields = TrackedFields(self._initial_fields, self._schedule_save)
        self._scheduler = DebounceScheduler(self._save, debounce_seconds)
        self._watching = False
        self._clearing = False

    @property
    def fields(self) -> TrackedFields:
        return self._fields

    @property
    def media_refs(self) -> tuple[MediaReference, ...]:
        return self.media.media_refs

    @property
    def loaded(self) -> bool:
        return self.state is DraftState.LOADED

    @property
    def save_pending(self) -> bool:
        return self._scheduler.pending

    async def activate(self) -> "FormDraftController":
        """Load the persisted draft, then start watching for changes."""
        await self.load()
        self._watching = True
        return self

    async def load(self) -> None:
        """Fetch the draft and overwrite local state with it. Safe to repeat."""
        self.state = DraftState.LOADING
        try:
            draft = await self.store.load(self.identity)
            if draft.found:
                self._fields.replace({**self._initial_fields, **draft.fields})
                self.media.replace(draft.media_refs)
                logger.debug(
                    "Restored draft %s with %d media", self.identity.as_key(), len(draft.media_refs)
                )
        finally:
            # Marked loaded even when the fetch failed.
            self.state = DraftState.LOADED

    def update_fields(self, partial: Mapping[str, Any]) -> None:
        if not self.loaded:
            return
        self._fields.update(partial)

    def touch(self) -> None:
        """Report an in-place edit of a nested field value."""
        self._schedule_save()

    def _schedule_save(self) -> None:
        if self._watching and self.loaded and not self._clearing:
            self._scheduler.schedule()

    async def _save(self) -> None:
        if not self.loaded or self._clearing:
            return
        await self.store.save(
            self.identity, self._fields.snapshot(), list(self.media.media_refs)
        )

    async def flush(self) -> None:
        """Write a pending save now rather than when the timer fires."""
        await self._scheduler.flush()

    async def clear(self) -> None:
        """
        Delete the draft's media and then its record.

        Call after the form was submitted. A pending save is dropped and a save
        already in flight is awaited first, so the record stays deleted.
        """
        if not self.identity.is_complete:
            return
        self._clearing = True
        try:
            self._scheduler.cancel()
            await self._scheduler.wait()
            result = await self.media.remove_all()
            # Only blobs that survived may still be referenced.
            self.media.retain(result.failed)
            await self.store.clear(self.identity)
            self.media.reset()
        finally:
            self._clearing = False

    async def upload_media(
        self, file: Optional[MediaFile], metadata: Optional[dict] = None
    ) -> Optional[MediaReference]:
        ref = await self.media.upload(file, metadata)
        if ref is not None:
            self._schedule_save()
        return ref

    async def remove_media(self, file_id: str) -> None:
        try:
            await self.media.remove(file_id)
        finally:
            self._schedule_save()

    async def media_url(
        self, ref: Optional[MediaReference], ttl: Optional[int] = None
    ) -> Optional[str]:
        return await self.media.signed_url(ref, ttl)

    def close(self) -> None:
        self._watching = False
        self._scheduler.cancel()

    async def __aenter__(self) -> "FormDraftController":
        return await self.activate()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.flush()
        self.close()


async def open_draft(
    form_id: Optional[str],
    user_id: Optional[str],
    patient_id: str = DEFAULT_PATIENT_ID,
    initial_fields: Optional[Mapping[str, Any]] = None,
) -> FormDraftController:
    """Build a controller on the configured backends and activate it."""
    settings = get_settings()
    identity = DraftIdentity(form_id, user_id, patient_id)
    controller = FormDraftController(
        identity,
        AutosaveStore(get_draft_store()),
        MediaAttachmentManager(
            get_storage_client(),
            identity,
            upload_timeout=settings.autosave_upload_timeout_seconds,
            signed_url_ttl=settings.autosave_signed_url_ttl,
        ),
        initial_fields=initial_fields,
        debounce_seconds=settings.autosave_debounce_ms / 1000,
    )
    return await controller.activate()
