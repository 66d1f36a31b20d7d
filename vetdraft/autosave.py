"""
Async adapter between form state and the draft store.

One record per (form, user, patient) holds the form fields and, under a
reserved key, the list of attached media references. Date-time values are
written as ISO-8601 strings and parsed back on load.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from vetdraft.db import DraftStore
from vetdraft.errors import guarded
from vetdraft.models import (
    MEDIA_FILES_KEY,
    DraftIdentity,
    DraftRecord,
    LoadedDraft,
    MediaReference,
    isoformat_ms,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{3})?Z?$")


def encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return isoformat_ms(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    return value


def parse_iso_datetime(value: Any) -> Optional[datetime]:
    """Return a datetime if ``value`` is an ISO-8601 date-time string."""
    if not isinstance(value, str) or not ISO_DATETIME_RE.match(value):
        return None
    aware = value.endswith("Z")
    try:
        parsed = datetime.fromisoformat(value[:-1] if aware else value)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc) if aware else parsed


def decode_dates(data: Mapping[str, Any]) -> dict[str, Any]:
    # Only top-level values; nested structures are returned untouched.
    converted = dict(data)
    for key, value in data.items():
        parsed = parse_iso_datetime(value)
        if parsed is not None:
            converted[key] = parsed
    return converted


def _parse_media_refs(raw: Any) -> list[MediaReference]:
    refs: list[MediaReference] = []
    for item in raw or []:
        try:
            refs.append(MediaReference.from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed media reference %r: %s", item, exc)
    return refs


class AutosaveStore:
    """Load, save and clear draft records for an identity."""

    def __init__(self, db: DraftStore):
        self.db = db

    @guarded("autosave.load", fallback=LoadedDraft)
    async def load(self, identity: DraftIdentity) -> LoadedDraft:
        if not identity.is_complete:
            return LoadedDraft()
        record = await asyncio.to_thread(self.db.get_draft, identity)
        if record is None:
            logger.debug("No autosave draft for %s", identity.as_key())
            return LoadedDraft()

        data = dict(record.data or {})
        media_refs = _parse_media_refs(data.pop(MEDIA_FILES_KEY, None))
        return LoadedDraft(
            fields=decode_dates(data), media_refs=media_refs, found=True
        )

    @guarded("autosave.save")
    async def save(
        self,
        identity: DraftIdentity,
        fields: Mapping[str, Any],
        media_refs: Iterable[MediaReference],
    ) -> None:
        if not identity.is_complete:
            return
        data = {
            key: encode_value(value)
            for key, value in fields.items()
            if key != MEDIA_FILES_KEY
        }
        data[MEDIA_FILES_KEY] = [ref.as_dict() for ref in media_refs]
        form_id, user_id, patient_id = identity.as_key()
        record = DraftRecord(
            form_id=form_id,
            user_id=user_id,
            patient_id=patient_id,
            data=data,
            updated_at=utc_now_iso(),
        )
        await asyncio.to_thread(self.db.upsert_draft, record)
        logger.debug(
            "Autosaved %s (%d fields, %d media)",
            identity.as_key(),
            len(data) - 1,
            len(data[MEDIA_FILES_KEY]),
        )

    @guarded("autosave.clear")
    async def clear(self, identity: DraftIdentity) -> None:
        if not identity.is_complete:
            return
        deleted = await asyncio.to_thread(self.db.delete_draft, identity)
        logger.info(
            "Cleared autosave draft %s (record %s)",
            identity.as_key(),
            "deleted" if deleted else "absent",
        )

    async def get_record(self, identity: DraftIdentity) -> Optional[DraftRecord]:
        if not identity.is_complete:
            return None
        return await asyncio.to_thread(self.db.get_draft, identity)
