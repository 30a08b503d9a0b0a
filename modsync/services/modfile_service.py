"""File records and binary downloads of items."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from modsync.exceptions import NotFoundError
from modsync.services.download_service import DownloadRequest

if TYPE_CHECKING:
    from modsync.filesystem.item_cache import ItemCache
    from modsync.remote.base import CatalogService
    from modsync.schemas.catalog import FileRecord, Item
    from modsync.services.download_service import DownloadCoordinator, DownloadHandle

logger = logging.getLogger(__name__)


class ModfileService:
    def __init__(
        self, remote: CatalogService, items: ItemCache, downloads: DownloadCoordinator
    ) -> None:
        self.remote = remote
        self.items = items
        self.downloads = downloads

    async def load_or_fetch_file_record(self, item_id: int, file_id: int) -> FileRecord:
        """Return the stored file record, fetching and storing it on first use."""
        record = self.items.load_file_record(item_id, file_id)
        if record is not None:
            return record
        record = await self.remote.get_file(item_id, file_id)
        self.items.store_file_record(record)
        return record

    def start_binary_download(self, item: Item) -> DownloadHandle:
        """Queue the download of an item's current binary.

        Raises NotFoundError if the item has no downloadable file.
        """
        modfile = item.modfile
        if modfile is None or not modfile.binary_url:
            raise NotFoundError(f"Item {item.id} has no downloadable file")
        destination = self.items.binary_path_for(item.id, modfile.id)
        logger.info("Starting download of file %d for item %d", modfile.id, item.id)
        return self.downloads.submit_binary(
            DownloadRequest(
                source_url=modfile.binary_url,
                destination=destination,
                expected_md5=modfile.filehash_md5,
            )
        )
