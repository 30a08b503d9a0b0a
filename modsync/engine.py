"""Sync engine: the context object that owns every component of a local mirror."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from modsync.exceptions import ModSyncError
from modsync.filesystem.item_cache import ItemCache
from modsync.filesystem.manifest_store import ManifestStore, SessionStore
from modsync.remote.client import HttpCatalogService
from modsync.schemas.page import TimeRange
from modsync.services.datetime_service import now_timestamp
from modsync.services.download_service import DownloadCoordinator
from modsync.services.event_service import EventProcessor
from modsync.services.image_service import ImageService
from modsync.services.modfile_service import ModfileService
from modsync.services.notifications import ItemAdded, ItemUpdated, NotificationBus
from modsync.services.pagination import fetch_all_results
from modsync.services.poll_service import Poller
from modsync.services.session_service import SessionManager
from modsync.services.subscription_service import SubscriptionReconciler

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from modsync.config import Settings
    from modsync.filesystem.item_cache import BinaryStatus
    from modsync.remote.base import CatalogService
    from modsync.schemas.catalog import CatalogProfile, FileRecord, Item, MetadataKVP
    from modsync.schemas.event import Event
    from modsync.schemas.manifest import AuthenticatedUser
    from modsync.schemas.page import Page, Pagination
    from modsync.services.download_service import DownloadHandle
    from modsync.services.event_service import EventReport

logger = logging.getLogger(__name__)


class SyncEngine:
    """Mirror of a remote catalog in ``settings.cache_dir``.

    One engine owns the cache directory; callers construct it, await
    :meth:`initialize`, and :meth:`close` it when done.
    """

    def __init__(
        self,
        settings: Settings,
        remote: CatalogService,
        http_client: httpx.AsyncClient,
        *,
        bus: NotificationBus | None = None,
        clock: Callable[[], int] = now_timestamp,
    ) -> None:
        self.settings = settings
        self.remote = remote
        self.http_client = http_client
        self.clock = clock
        self.bus = bus or NotificationBus()

        self.manifest_store = ManifestStore(settings.manifest_path)
        self.items = ItemCache(settings.mods_dir)
        self.session = SessionManager(remote, SessionStore(settings.user_data_path), self.bus)
        self.downloads = DownloadCoordinator(http_client, self.manifest_store)
        self.events = EventProcessor(
            remote, self.items, self.manifest_store, self.bus, self.session.is_subscribed
        )
        self.subscriptions = SubscriptionReconciler(
            remote,
            self.session,
            self.bus,
            game_id=settings.game_id,
            page_limit=settings.page_limit,
        )
        self.modfiles = ModfileService(remote, self.items, self.downloads)
        self.images = ImageService(self.items, self.manifest_store, self.downloads, self.bus)
        self.poller = Poller(
            lambda: self.manifest_store.manifest.last_sync_timestamp,
            self.run_sync_pass,
            interval_seconds=settings.poll_interval_seconds,
            tick_seconds=settings.poll_tick_seconds,
            clock=clock,
        )

    @classmethod
    def from_settings(cls, settings: Settings, *, require_remote: bool = True) -> SyncEngine:
        """Build an engine talking to the configured remote catalog over HTTP.

        With ``require_remote=False`` the remote settings are not checked; the
        engine can still be used for operations on local state.
        """
        if require_remote:
            settings.validate_runtime()
        client = httpx.AsyncClient(
            timeout=settings.request_timeout_seconds,
            headers={"Accept": "application/json"},
            follow_redirects=True,
        )
        remote = HttpCatalogService(
            settings.api_url,
            settings.api_key,
            settings.game_id,
            client=client,
        )
        return cls(settings, remote, client)

    async def __aenter__(self) -> SyncEngine:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    # ---------[ Lifecycle ]---------

    def load_local(self) -> AuthenticatedUser | None:
        """Load manifest, items and session from disk without touching the network."""
        cache_dir = self.settings.cache_dir
        if cache_dir.exists() and not cache_dir.is_dir():
            msg = f"Cache path exists but is not a directory: {cache_dir}"
            raise NotADirectoryError(msg)
        self.settings.mods_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Loading local cache from %s", cache_dir)

        self.manifest_store.load()
        self.items.load()
        return self.session.load()

    async def initialize(self, *, rebuild: bool = True) -> None:
        """Load local state, check the session, then refresh from the remote catalog.

        Remote failures are logged; the engine still works from what is on disk.
        """
        if self.load_local() is not None:
            try:
                await self.session.validate()
            except ModSyncError as exc:
                logger.warning("Could not validate session: %s", exc)

        try:
            await self.refresh_catalog_profile()
        except ModSyncError as exc:
            logger.warning("Could not refresh catalog profile: %s", exc)
        if rebuild:
            try:
                await self.rebuild_item_cache()
            except ModSyncError as exc:
                logger.warning("Could not rebuild item cache: %s", exc)

    async def close(self) -> None:
        await self.poller.disable()
        await self.downloads.close()
        await self.http_client.aclose()

    # ---------[ Remote refresh ]---------

    async def refresh_catalog_profile(self) -> CatalogProfile:
        profile = await self.remote.get_catalog_profile()
        self.manifest_store.manifest.catalog_profile = profile
        self.manifest_store.save()
        return profile

    async def fetch_item_metadata(self, item_id: int) -> list[MetadataKVP]:
        async def query(pagination: Pagination) -> Page[MetadataKVP]:
            return await self.remote.list_item_metadata(item_id, pagination)

        return await fetch_all_results(query, self.settings.page_limit)

    async def rebuild_item_cache(self) -> None:
        """Fetch the whole catalog, upsert it, then fill in key-value metadata.

        The sync cursor moves to the time the listing started, so a pass
        right after a rebuild only sees events raised since then.
        """
        started_at = self.clock()

        async def query(pagination: Pagination) -> Page[Item]:
            return await self.remote.list_items({}, pagination)

        fetched = await fetch_all_results(query, self.settings.page_limit)
        result = self.items.apply_bulk(fetched)
        for item in result.added:
            self.bus.publish(ItemAdded(item))
        for item in result.updated:
            self.bus.publish(ItemUpdated(item.id))
        logger.info(
            "Item cache rebuilt: %d added, %d updated", len(result.added), len(result.updated)
        )

        for item in fetched:
            try:
                kvps = await self.fetch_item_metadata(item.id)
            except ModSyncError as exc:
                logger.warning("Could not fetch metadata for item %d: %s", item.id, exc)
                continue
            if kvps:
                self.items.apply_kvp_metadata(item.id, kvps)

        self.manifest_store.manifest.last_sync_timestamp = started_at
        self.manifest_store.save()

    async def fetch_events(self, since: int, until: int) -> list[Event]:
        time_range = TimeRange(start=since, end=until)

        async def query(pagination: Pagination) -> Page[Event]:
            return await self.remote.list_events(time_range, pagination)

        return await fetch_all_results(query, self.settings.page_limit)

    async def sync_events(self, since: int, until: int) -> EventReport:
        """Fetch and apply the events of ``[since, until)``, then advance the cursor."""
        events = await self.fetch_events(since, until)
        report = await self.events.process(events)
        self.manifest_store.manifest.last_sync_timestamp = until
        self.manifest_store.save()
        logger.info(
            "Applied %d events (%d dropped, %d pending)",
            len(report.applied),
            len(report.dropped),
            len(report.pending),
        )
        return report

    async def run_sync_pass(self, since: int, until: int) -> None:
        """Refresh catalog metadata, events and subscriptions side by side.

        Each part logs its own failure without affecting the others.
        """

        async def guarded(name: str, coro: Awaitable[object]) -> None:
            try:
                await coro
            except ModSyncError as exc:
                logger.warning("Sync pass: %s failed: %s", name, exc)

        await asyncio.gather(
            guarded("catalog profile refresh", self.refresh_catalog_profile()),
            guarded("event sync", self.sync_events(since, until)),
            guarded("subscription refresh", self.subscriptions.refresh()),
        )

    async def sync_once(self) -> None:
        """Run a pass now, regardless of the poll interval."""
        await self.run_sync_pass(self.manifest_store.manifest.last_sync_timestamp, self.clock())

    # ---------[ Snapshots ]---------

    @property
    def catalog_profile(self) -> CatalogProfile:
        return self.manifest_store.manifest.catalog_profile

    @property
    def last_sync_timestamp(self) -> int:
        return self.manifest_store.manifest.last_sync_timestamp

    @property
    def pending_events(self) -> list[Event]:
        return list(self.manifest_store.manifest.pending_events)

    @property
    def user(self) -> AuthenticatedUser | None:
        return self.session.user

    def get_item(self, item_id: int) -> Item | None:
        return self.items.get(item_id)

    def list_items(self) -> list[Item]:
        return sorted(self.items, key=lambda item: item.id)

    # ---------[ Session ]---------

    async def login(self, oauth_token: str) -> AuthenticatedUser:
        user = await self.session.login(oauth_token)
        try:
            await self.subscriptions.refresh()
        except ModSyncError as exc:
            logger.warning("Could not fetch subscriptions after login: %s", exc)
        return user

    def logout(self) -> None:
        self.session.logout()

    def is_subscribed(self, item_id: int) -> bool:
        return self.session.is_subscribed(item_id)

    async def subscribe(self, item_id: int) -> None:
        await self.session.subscribe(item_id)

    async def unsubscribe(self, item_id: int) -> None:
        await self.session.unsubscribe(item_id)

    # ---------[ Files and binaries ]---------

    async def load_or_fetch_file_record(self, item_id: int, file_id: int) -> FileRecord:
        return await self.modfiles.load_or_fetch_file_record(item_id, file_id)

    def start_binary_download(self, item: Item) -> DownloadHandle:
        return self.modfiles.start_binary_download(item)

    def binary_status(self, item: Item) -> BinaryStatus:
        return self.items.binary_status(item)

    def binary_path(self, item: Item) -> Path | None:
        return self.items.binary_path(item)

    def delete_binaries(self, item_id: int) -> int:
        return self.items.delete_binaries(item_id)
