"""
Records shared by the store, blob and controller layers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

DEFAULT_PATIENT_ID = "currentUser"
MEDIA_FILES_KEY = "_autosave_media_files"


def isoformat_ms(value: datetime) -> str:
    """Format a datetime as ISO-8601 with millisecond precision.

    Aware values are converted to UTC and suffixed with ``Z``; naive values
    are written as-is without a suffix.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
        suffix = "Z"
    else:
        suffix = ""
    return value.strftime("%Y-%m-%dT%H:%M:%S") + f".{value.microsecond // 1000:03d}{suffix}"


def utc_now_iso() -> str:
    return isoformat_ms(datetime.now(timezone.utc))


@dataclass(frozen=True)
class DraftIdentity:
    """The (form, user, subject) triple a draft is keyed by."""

    form_id: Optional[str]
    user_id: Optional[str]
    patient_id: str = DEFAULT_PATIENT_ID

    @property
    def is_complete(self) -> bool:
        return bool(self.form_id) and bool(self.user_id)

    def as_key(self) -> tuple[str, str, str]:
        return (self.form_id or "", self.user_id or "", self.patient_id)


@dataclass
class MediaReference:
    id: str
    storage_path: str
    original_name: str
    size: int
    content_type: str
    metadata: dict = field(default_factory=dict)
    uploaded_at: str = field(default_factory=utc_now_iso)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "autosave_path": self.storage_path,
            "original_name": self.original_name,
            "file_size": self.size,
            "file_type": self.content_type,
            "metadata": dict(self.metadata),
            "uploaded_at": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MediaReference":
        if not isinstance(data, dict):
            raise ValueError(f"media reference must be a mapping, got {type(data).__name__}")
        return cls(
            id=str(data["id"]),
            storage_path=data["autosave_path"],
            original_name=data.get("original_name") or "",
            size=int(data.get("file_size") or 0),
            content_type=data.get("file_type") or "",
            metadata=dict(data.get("metadata") or {}),
            uploaded_at=data.get("uploaded_at") or "",
        )


@dataclass(frozen=True)
class MediaFile:
    """A file handed over for upload."""

    name: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        _, dot, ext = self.name.rpartition(".")
        return ext if dot and ext else "bin"

    def is_valid(self) -> bool:
        return bool(self.name) and isinstance(self.data, (bytes, bytearray))


@dataclass
class DraftRecord:
    form_id: str
    user_id: str
    patient_id: str
    data: dict
    updated_at: str = field(default_factory=utc_now_iso)

    @property
    def identity(self) -> DraftIdentity:
        return DraftIdentity(self.form_id, self.user_id, self.patient_id)

    @property
    def media_files(self) -> list[dict]:
        return list(self.data.get(MEDIA_FILES_KEY) or [])


@dataclass
class LoadedDraft:
    fields: dict[str, Any] = field(default_factory=dict)
    media_refs: list[MediaReference] = field(default_factory=list)
    found: bool = False


@dataclass
class BulkDeleteResult:
    requested: int = 0
    deleted: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
