"""Exception hierarchy shared by the store adapters, AI layer and facade."""
from __future__ import annotations

from typing import Any


class SkillSyncError(Exception):
    """Base class for every error raised on purpose by this package."""


class StoreError(SkillSyncError):
    """Raised when the social graph/identity store rejects or fails a call."""

    def __init__(self, message: str, *, status_code: int | None = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AuthError(StoreError):
    """Raised for bad credentials or an unusable auth session."""


class AiServiceError(SkillSyncError):
    """Raised when the AI text service cannot be reached or answers with an error."""


class AiResponseError(AiServiceError):
    """Raised when the AI text service answers with a missing or malformed payload."""


__all__ = ["SkillSyncError", "StoreError", "AuthError", "AiServiceError", "AiResponseError"]
