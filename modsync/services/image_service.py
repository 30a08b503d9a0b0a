"""Item logos and gallery images: reuse saved copies, download the rest."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from modsync.exceptions import NotFoundError
from modsync.services.download_service import DownloadRequest
from modsync.services.notifications import GalleryImageUpdated, LogoUpdated

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from modsync.filesystem.item_cache import ItemCache
    from modsync.filesystem.manifest_store import ManifestStore
    from modsync.schemas.catalog import GalleryImage, Item, LogoLocator
    from modsync.services.download_service import (
        DownloadCoordinator,
        DownloadHandle,
        DownloadResult,
    )
    from modsync.services.notifications import NotificationBus

logger = logging.getLogger(__name__)


class LogoVersion(StrEnum):
    ORIGINAL = "original"
    THUMB_320X180 = "thumb_320x180"
    THUMB_640X360 = "thumb_640x360"
    THUMB_1280X720 = "thumb_1280x720"

    def source(self, logo: LogoLocator) -> str:
        return getattr(logo, self.value)


class GalleryImageVersion(StrEnum):
    ORIGINAL = "original"
    THUMB_320X180 = "thumb_320x180"

    def source(self, image: GalleryImage) -> str:
        return getattr(image, self.value)


@dataclass(frozen=True)
class ImageLoad:
    """Either a saved image (``path``) or a download in flight (``handle``).

    Both are None when the item has no image at that version.
    """

    path: Path | None = None
    handle: DownloadHandle | None = None

    @property
    def placeholder(self) -> bytes | None:
        return self.handle.placeholder if self.handle is not None else None


class ImageService:
    """Resolves item images through the image index and the concurrent lane."""

    def __init__(
        self,
        items: ItemCache,
        manifest_store: ManifestStore,
        downloads: DownloadCoordinator,
        bus: NotificationBus,
        *,
        placeholder: bytes = b"",
    ) -> None:
        self.items = items
        self.manifest_store = manifest_store
        self.downloads = downloads
        self.bus = bus
        self.placeholder = placeholder

    def logo_path(self, item_id: int, version: LogoVersion) -> Path:
        return self.items.item_dir(item_id) / "logo" / f"{version.value}.png"

    def gallery_image_path(self, item_id: int, filename: str, version: GalleryImageVersion) -> Path:
        stem = PurePosixPath(filename).stem
        return self.items.item_dir(item_id) / "gallery" / version.value / f"{stem}.png"

    def find_saved_image(self, url: str) -> Path | None:
        """Local copy of a remote image, if one was saved and still exists."""
        if not url:
            return None
        return self.manifest_store.lookup_image(url)

    def _require_item(self, item_id: int) -> Item:
        item = self.items.get(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} is not cached")
        return item

    def load_or_download_logo(self, item_id: int, version: LogoVersion) -> ImageLoad:
        """Return the saved logo or start downloading it; LogoUpdated follows on success."""
        item = self._require_item(item_id)
        url = version.source(item.logo)
        if not url:
            logger.debug("Item %d has no %s logo", item_id, version)
            return ImageLoad()
        saved = self.find_saved_image(url)
        if saved is not None:
            return ImageLoad(path=saved)
        return ImageLoad(handle=self._download_logo(item_id, version, url))

    def load_or_download_gallery_image(
        self, item_id: int, filename: str, version: GalleryImageVersion
    ) -> ImageLoad:
        """Gallery counterpart of :meth:`load_or_download_logo`.

        An unknown ``filename`` is logged and yields an empty load.
        """
        item = self._require_item(item_id)
        image = item.find_gallery_image(filename)
        if image is None:
            logger.warning("Item %d (%s) has no gallery image %r", item_id, item.name, filename)
            return ImageLoad()
        url = version.source(image)
        if not url:
            return ImageLoad()
        saved = self.find_saved_image(url)
        if saved is not None:
            return ImageLoad(path=saved)

        destination = self.gallery_image_path(item_id, filename, version)
        running = self.downloads.image_in_flight(destination)
        if running is not None:
            return ImageLoad(handle=running)
        handle = self.downloads.submit_image(
            DownloadRequest(source_url=url, destination=destination),
            placeholder=self.placeholder,
        )

        def on_done(result: DownloadResult) -> None:
            if result.ok and result.path is not None:
                self.bus.publish(
                    GalleryImageUpdated(item_id, filename, version.value, result.path)
                )

        handle.add_done_callback(on_done)
        return ImageLoad(handle=handle)

    def download_missing_logos(
        self, items: Iterable[Item], version: LogoVersion
    ) -> list[DownloadHandle]:
        """Start downloads for every logo of ``items`` not saved locally."""
        handles: list[DownloadHandle] = []
        for item in items:
            url = version.source(item.logo)
            if not url or self.find_saved_image(url) is not None:
                continue
            handles.append(self._download_logo(item.id, version, url))
        if handles:
            logger.info("Downloading %d missing %s logos", len(handles), version)
        return handles

    def _download_logo(self, item_id: int, version: LogoVersion, url: str) -> DownloadHandle:
        destination = self.logo_path(item_id, version)
        running = self.downloads.image_in_flight(destination)
        if running is not None:
            return running
        handle = self.downloads.submit_image(
            DownloadRequest(source_url=url, destination=destination),
            placeholder=self.placeholder,
        )

        def on_done(result: DownloadResult) -> None:
            if result.ok and result.path is not None:
                self.bus.publish(LogoUpdated(item_id, version.value, result.path))

        handle.add_done_callback(on_done)
        return handle
