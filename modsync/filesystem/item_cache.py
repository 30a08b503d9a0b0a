"""Item cache: in-memory item map backed by one directory per item."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from modsync.filesystem.atomic import write_text_atomic
from modsync.schemas.catalog import FileRecord, Item, MetadataKVP

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)

PROFILE_FILENAME = "mod_profile.data"
_BINARY_RE = re.compile(r"^modfile_(\d+)\.zip$")


class BinaryStatus(StrEnum):
    """Local state of an item's downloadable binary."""

    MISSING = "missing"
    REQUIRES_UPDATE = "requires_update"
    UP_TO_DATE = "up_to_date"


@dataclass
class BulkApplyResult:
    """Outcome of :meth:`ItemCache.apply_bulk`."""

    added: list[Item] = field(default_factory=list)
    updated: list[Item] = field(default_factory=list)


class ItemCache:
    """Maps item id to item record and mirrors every record to disk.

    Layout under ``mods_dir``::

        <id>/mod_profile.data
        <id>/modfile_<file_id>.data
        <id>/modfile_<file_id>.zip
    """

    def __init__(self, mods_dir: Path) -> None:
        self.mods_dir = mods_dir
        self._items: dict[int, Item] = {}

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Item]:
        return iter(list(self._items.values()))

    def ids(self) -> list[int]:
        return list(self._items)

    def item_dir(self, item_id: int) -> Path:
        return self.mods_dir / str(item_id)

    def load(self) -> int:
        """Populate memory from disk. Unparseable records are skipped and logged."""
        self._items.clear()
        self.mods_dir.mkdir(parents=True, exist_ok=True)
        for item_dir in sorted(p for p in self.mods_dir.iterdir() if p.is_dir()):
            profile_path = item_dir / PROFILE_FILENAME
            if not profile_path.exists():
                continue
            try:
                item = Item.model_validate_json(profile_path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ValidationError) as exc:
                logger.warning("Unable to parse item profile at %s: %s", profile_path, exc)
                continue
            self._items[item.id] = item
        logger.info("Loaded %d cached items from %s", len(self._items), self.mods_dir)
        return len(self._items)

    def get(self, item_id: int) -> Item | None:
        return self._items.get(item_id)

    def put(self, item: Item) -> None:
        """Insert or overwrite an item in memory and on disk."""
        self._items[item.id] = item
        write_text_atomic(
            self.item_dir(item.id) / PROFILE_FILENAME,
            item.model_dump_json(indent=2),
        )

    def remove(self, item_id: int) -> bool:
        """Forget an item and delete its whole directory (profile, files, images).

        Irreversible: callers decide beforehand whether the item must be
        retained locally.
        """
        existed = self._items.pop(item_id, None) is not None
        item_dir = self.item_dir(item_id)
        if item_dir.exists():
            shutil.rmtree(item_dir)
            existed = True
        return existed

    def apply_bulk(self, items: Iterable[Item]) -> BulkApplyResult:
        """Upsert many items, reporting which were new and which were already cached."""
        result = BulkApplyResult()
        for item in items:
            if item.id in self._items:
                result.updated.append(item)
            else:
                result.added.append(item)
            self.put(item)
        return result

    def apply_kvp_metadata(self, item_id: int, kvps: list[MetadataKVP]) -> Item | None:
        """Replace an item's key-value metadata. Returns None if the item is not cached."""
        item = self._items.get(item_id)
        if item is None:
            logger.warning("Metadata received for uncached item %d, ignoring", item_id)
            return None
        updated = item.model_copy(update={"metadata_kvp": list(kvps)})
        self.put(updated)
        return updated

    # ---------[ File records ]---------

    def file_record_path(self, item_id: int, file_id: int) -> Path:
        return self.item_dir(item_id) / f"modfile_{file_id}.data"

    def store_file_record(self, record: FileRecord) -> None:
        write_text_atomic(
            self.file_record_path(record.item_id, record.id),
            record.model_dump_json(indent=2),
        )

    def load_file_record(self, item_id: int, file_id: int) -> FileRecord | None:
        path = self.file_record_path(item_id, file_id)
        if not path.exists():
            return None
        try:
            return FileRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as exc:
            logger.warning("Unable to parse file record at %s: %s", path, exc)
            return None

    # ---------[ Binaries ]---------

    def binary_path_for(self, item_id: int, file_id: int) -> Path:
        return self.item_dir(item_id) / f"modfile_{file_id}.zip"

    def downloaded_binaries(self, item_id: int) -> list[Path]:
        """All downloaded binary artifacts of an item, oldest file id first."""
        item_dir = self.item_dir(item_id)
        if not item_dir.is_dir():
            return []
        found: list[tuple[int, Path]] = []
        for path in item_dir.iterdir():
            match = _BINARY_RE.match(path.name)
            if match and path.is_file():
                found.append((int(match.group(1)), path))
        return [path for _, path in sorted(found)]

    def binary_status(self, item: Item) -> BinaryStatus:
        if item.primary_file_id and self.binary_path_for(item.id, item.primary_file_id).is_file():
            return BinaryStatus.UP_TO_DATE
        if self.downloaded_binaries(item.id):
            return BinaryStatus.REQUIRES_UPDATE
        return BinaryStatus.MISSING

    def binary_path(self, item: Item) -> Path | None:
        """Path of the current binary, else of any older one, else None."""
        if item.primary_file_id:
            current = self.binary_path_for(item.id, item.primary_file_id)
            if current.is_file():
                return current
        binaries = self.downloaded_binaries(item.id)
        return binaries[-1] if binaries else None

    def delete_binaries(self, item_id: int) -> int:
        """Delete every downloaded binary of an item. Returns how many were removed."""
        binaries = self.downloaded_binaries(item_id)
        for path in binaries:
            path.unlink()
        if binaries:
            logger.info("Deleted %d binaries of item %d", len(binaries), item_id)
        return len(binaries)
