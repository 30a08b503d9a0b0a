"""Catalog schemas: items, file records, catalog profile."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LogoLocator(BaseModel):
    """Remote URLs of an item logo in each published size."""

    filename: str = ""
    original: str = ""
    thumb_320x180: str = ""
    thumb_640x360: str = ""
    thumb_1280x720: str = ""


class GalleryImage(BaseModel):
    """Remote URLs of a gallery image."""

    filename: str
    original: str = ""
    thumb_320x180: str = ""


class MetadataKVP(BaseModel):
    """A single key-value metadata pair attached to an item."""

    metakey: str
    metavalue: str


class FileRecord(BaseModel):
    """A released file (modfile) of an item. Immutable once written."""

    id: int
    item_id: int
    date_added: int = 0
    filesize: int = Field(default=0, ge=0)
    filehash_md5: str | None = None
    version: str | None = None
    changelog: str | None = None
    metadata_blob: str | None = None
    binary_url: str | None = None


class Item(BaseModel):
    """A catalog entry (mod) as cached locally."""

    id: int
    name: str = ""
    name_id: str = ""
    summary: str = ""
    description: str = ""
    homepage_url: str | None = None
    date_added: int = 0
    date_updated: int = 0
    date_live: int = 0
    visible: int = 1
    status: int = 1
    logo: LogoLocator = Field(default_factory=LogoLocator)
    gallery_images: list[GalleryImage] = Field(default_factory=list)
    youtube_urls: list[str] = Field(default_factory=list)
    sketchfab_urls: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    metadata_blob: str | None = None
    metadata_kvp: list[MetadataKVP] = Field(default_factory=list)
    modfile: FileRecord | None = None

    @property
    def primary_file_id(self) -> int:
        """Id of the current file, 0 when the item has none."""
        return self.modfile.id if self.modfile is not None else 0

    def find_gallery_image(self, filename: str) -> GalleryImage | None:
        for image in self.gallery_images:
            if image.filename == filename:
                return image
        return None

    def merged_with(self, fetched: Item) -> Item:
        """Return ``fetched`` merged onto this cached record.

        Fetched values win. Key-value metadata is fetched separately from the
        item itself, so the cached pairs survive when ``fetched`` has none.
        """
        if fetched.metadata_kvp or not self.metadata_kvp:
            return fetched.model_copy(deep=True)
        return fetched.model_copy(
            update={"metadata_kvp": [kvp.model_copy() for kvp in self.metadata_kvp]},
            deep=True,
        )


class TagOption(BaseModel):
    """A tag group offered by the catalog."""

    name: str
    type: str = "checkboxes"
    tags: list[str] = Field(default_factory=list)
    hidden: bool = False


class CatalogProfile(BaseModel):
    """Catalog-wide metadata (the game profile)."""

    id: int = 0
    name: str = ""
    name_id: str = ""
    summary: str = ""
    date_updated: int = 0
    logo: LogoLocator = Field(default_factory=LogoLocator)
    tag_options: list[TagOption] = Field(default_factory=list)
