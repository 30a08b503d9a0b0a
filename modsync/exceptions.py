"""Sync engine exception types.

Convention:
- Nothing raised here is fatal to the process. Callers log the failure and
  either leave the owning work pending for the next poll cycle or skip the
  affected item.
- ``TransientNetworkError`` — the request may succeed later; no retry is
  scheduled, the owning event or request simply stays pending.
- ``AuthError`` — 401/403 from an authenticated call; the session is logged
  out and the call is not retried.
- ``IntegrityError`` — downloaded content does not match its expected hash;
  the partial artifact is discarded.
- ``CorruptStateError`` — a persisted file could not be read or parsed; local
  state is reset to defaults.
- ``NotFoundError`` — a referenced item or file does not exist.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class ModSyncError(Exception):
    """Base class for all sync engine errors."""


class TransientNetworkError(ModSyncError):
    """Raised when a remote call fails in a way that may succeed on a later attempt."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(ModSyncError):
    """Raised when the remote service rejects the session token (401/403)."""

    def __init__(self, status_code: int, message: str = "") -> None:
        super().__init__(message or f"Authentication rejected ({status_code})")
        self.status_code = status_code


class IntegrityError(ModSyncError):
    """Raised when downloaded content does not match its expected digest."""

    def __init__(self, source_url: str, expected: str, actual: str) -> None:
        super().__init__(f"Hash mismatch for {source_url}: expected {expected}, got {actual}")
        self.source_url = source_url
        self.expected = expected
        self.actual = actual


class CorruptStateError(ModSyncError):
    """Raised when a persisted state file cannot be read or parsed."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Unreadable state file {path}: {reason}")
        self.path = path


class NotFoundError(ModSyncError):
    """Raised when a referenced item or file does not exist."""
