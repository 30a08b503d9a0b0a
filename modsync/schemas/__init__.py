"""Pydantic schemas for catalog data and persisted engine state."""

from modsync.schemas.catalog import (
    CatalogProfile,
    FileRecord,
    GalleryImage,
    Item,
    LogoLocator,
    MetadataKVP,
    TagOption,
)
from modsync.schemas.event import Event, EventType
from modsync.schemas.manifest import AuthenticatedUser, Manifest, UserProfile
from modsync.schemas.page import PAGE_LIMIT_MAX, Page, Pagination, TimeRange

__all__ = [
    "PAGE_LIMIT_MAX",
    "AuthenticatedUser",
    "CatalogProfile",
    "Event",
    "EventType",
    "FileRecord",
    "GalleryImage",
    "Item",
    "LogoLocator",
    "Manifest",
    "MetadataKVP",
    "Page",
    "Pagination",
    "TagOption",
    "TimeRange",
    "UserProfile",
]
