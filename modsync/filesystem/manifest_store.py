"""Manifest and session persistence for the cache root directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from modsync.exceptions import CorruptStateError
from modsync.filesystem.atomic import write_text_atomic
from modsync.schemas.manifest import AuthenticatedUser, Manifest

logger = logging.getLogger(__name__)


_M = TypeVar("_M", bound=BaseModel)


def _read_model_file(path: Path, model: type[_M]) -> _M:
    """Parse a JSON state file into ``model``, raising CorruptStateError on any failure."""
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise CorruptStateError(path, str(exc)) from exc
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise CorruptStateError(path, f"{exc.error_count()} validation error(s)") from exc


class ManifestStore:
    """Owns the process-wide :class:`Manifest` and its ``manifest.data`` file.

    ``manifest`` is the live instance; every component that mutates it calls
    :meth:`save` before returning so the file never lags behind memory.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.manifest = Manifest()

    def load(self) -> Manifest:
        """Load the manifest, resetting to defaults if it is missing or unreadable."""
        if not self.path.exists():
            logger.info("No manifest at %s, starting fresh", self.path)
            self.manifest = Manifest()
            self.save()
            return self.manifest

        try:
            self.manifest = _read_model_file(self.path, Manifest)
        except CorruptStateError as exc:
            logger.warning("%s; resetting manifest to defaults", exc)
            self.manifest = Manifest()
            self.save()
            return self.manifest

        if self.prune_image_index():
            self.save()
        return self.manifest

    def save(self, manifest: Manifest | None = None) -> None:
        """Atomically persist ``manifest`` (or the live manifest)."""
        if manifest is not None:
            self.manifest = manifest
        write_text_atomic(self.path, self.manifest.model_dump_json(indent=2))

    def prune_image_index(self) -> int:
        """Drop image-index entries whose local file no longer exists."""
        index = self.manifest.image_index
        stale = [url for url, local in index.items() if not local or not Path(local).is_file()]
        for url in stale:
            del index[url]
        if stale:
            logger.debug("Pruned %d stale image index entries", len(stale))
        return len(stale)

    def lookup_image(self, url: str) -> Path | None:
        """Return the saved local path for ``url`` if the file is still there."""
        local = self.manifest.image_index.get(url)
        if local is None:
            return None
        path = Path(local)
        if path.is_file():
            return path
        del self.manifest.image_index[url]
        self.save()
        return None

    def record_image(self, url: str, path: Path) -> None:
        """Remember that ``url`` has been saved to ``path`` and persist."""
        self.manifest.image_index[url] = str(path)
        self.save()


class SessionStore:
    """Persists the authenticated-session record (``user.data``)."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> AuthenticatedUser | None:
        """Load the session record. Missing or corrupt files mean logged out."""
        if not self.path.exists():
            return None
        try:
            return _read_model_file(self.path, AuthenticatedUser)
        except CorruptStateError as exc:
            logger.warning("%s; discarding session", exc)
            self.delete()
            return None

    def save(self, user: AuthenticatedUser) -> None:
        write_text_atomic(self.path, user.model_dump_json(indent=2))

    def delete(self) -> None:
        self.path.unlink(missing_ok=True)
