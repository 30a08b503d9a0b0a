"""Protocol for the remote catalog service the engine mirrors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from modsync.schemas.catalog import CatalogProfile, FileRecord, Item, MetadataKVP
    from modsync.schemas.event import Event
    from modsync.schemas.manifest import UserProfile
    from modsync.schemas.page import Page, Pagination, TimeRange


@runtime_checkable
class CatalogService(Protocol):
    """Remote operations the sync engine depends on.

    Implementations raise :class:`~modsync.exceptions.AuthError` for 401/403
    on authenticated calls, :class:`~modsync.exceptions.NotFoundError` for
    missing resources and :class:`~modsync.exceptions.TransientNetworkError`
    for everything else that goes wrong on the wire.
    """

    async def list_items(
        self, filters: Mapping[str, str], pagination: Pagination
    ) -> Page[Item]:
        """List catalog items."""
        ...

    async def list_events(self, time_range: TimeRange, pagination: Pagination) -> Page[Event]:
        """List the latest item events added within ``time_range``."""
        ...

    async def list_subscriptions(
        self, token: str, filters: Mapping[str, str], pagination: Pagination
    ) -> Page[Item]:
        """List the items the token's user is subscribed to."""
        ...

    async def get_item(self, item_id: int) -> Item:
        """Fetch one item in full."""
        ...

    async def get_file(self, item_id: int, file_id: int) -> FileRecord:
        """Fetch one file record of an item."""
        ...

    async def get_catalog_profile(self) -> CatalogProfile:
        """Fetch catalog-wide metadata."""
        ...

    async def list_item_metadata(self, item_id: int, pagination: Pagination) -> Page[MetadataKVP]:
        """List key-value metadata of an item."""
        ...

    async def get_authenticated_user(self, token: str) -> UserProfile:
        """Fetch the profile of the token's user."""
        ...

    async def subscribe(self, token: str, item_id: int) -> None:
        """Subscribe the token's user to an item."""
        ...

    async def unsubscribe(self, token: str, item_id: int) -> None:
        """Unsubscribe the token's user from an item."""
        ...
