"""
Error types and the propagation policy for autosave operations.

Background operations (autosave writes, loads, signed URLs) fail into the
logs so data entry is never interrupted. User-initiated operations (media
delete, draft clear, restore) raise so the caller can react.
"""

from __future__ import annotations

import enum
import functools
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AutosaveError(Exception):
    """Base class for autosave failures."""


class DraftNotFoundError(AutosaveError):
    """No draft record exists for the identity."""


class MediaNotFoundError(AutosaveError):
    """The draft has no media reference with the requested id."""


class StorageError(AutosaveError):
    """The blob store rejected or failed a request."""


class BlobNotFoundError(StorageError):
    """The requested blob does not exist."""


class BlobExistsError(StorageError):
    """An upload targeted a path that already holds a blob."""


class UploadTimeoutError(StorageError):
    """An upload did not settle before its deadline."""


class MediaDeleteError(StorageError):
    """A media blob could not be deleted."""


class ErrorPolicy(enum.Enum):
    LOG_ONLY = "log_only"
    PROPAGATE = "propagate"


ERROR_POLICY: dict[str, ErrorPolicy] = {
    "autosave.load": ErrorPolicy.LOG_ONLY,
    "autosave.save": ErrorPolicy.LOG_ONLY,
    "autosave.clear": ErrorPolicy.PROPAGATE,
    "media.upload": ErrorPolicy.LOG_ONLY,
    "media.remove": ErrorPolicy.PROPAGATE,
    "media.remove_all": ErrorPolicy.LOG_ONLY,
    "media.signed_url": ErrorPolicy.LOG_ONLY,
    "restore": ErrorPolicy.PROPAGATE,
}


def policy_for(operation: str) -> ErrorPolicy:
    try:
        return ERROR_POLICY[operation]
    except KeyError:
        raise ValueError(f"No error policy registered for {operation!r}") from None


def guarded(
    operation: str, fallback: Optional[Callable[[], Any]] = None
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Apply the registered error policy to an async operation.

    With LOG_ONLY the failure is logged and ``fallback()`` (or None) is
    returned; with PROPAGATE the failure is logged and re-raised.
    """
    policy = policy_for(operation)

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception:
                if policy is ErrorPolicy.PROPAGATE:
                    logger.warning("[%s] failed; propagating to caller", operation)
                    raise
                logger.exception("[%s] failed", operation)
                return fallback() if fallback else None

        return wrapper

    return decorator
