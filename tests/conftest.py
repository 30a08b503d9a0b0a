"""Shared test fixtures for modsync."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx
import pytest

from modsync.config import Settings
from modsync.engine import SyncEngine
from modsync.filesystem.item_cache import ItemCache
from modsync.filesystem.manifest_store import ManifestStore
from modsync.services.notifications import (
    GalleryImageUpdated,
    ItemAdded,
    ItemRemoved,
    ItemUpdated,
    LogoUpdated,
    ModfileChanged,
    Notification,
    NotificationBus,
    SubscriptionAdded,
    SubscriptionRemoved,
    UserLoggedOut,
)
from tests.fakes import FakeCatalogService

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

ALL_NOTIFICATIONS: tuple[type[Notification], ...] = (
    ItemAdded,
    ItemUpdated,
    ItemRemoved,
    ModfileChanged,
    SubscriptionAdded,
    SubscriptionRemoved,
    UserLoggedOut,
    LogoUpdated,
    GalleryImageUpdated,
)


@dataclass
class FakeClock:
    """Settable replacement for ``now_timestamp``."""

    now: int = 1_000

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings rooted in a temporary cache directory."""
    return Settings(
        _env_file=None,
        cache_dir=tmp_path / "cache",
        api_url="https://api.example.test/v1",
        api_key="test-api-key",
        game_id=7,
        poll_interval_seconds=15,
        poll_tick_seconds=0.01,
        page_limit=2,
    )


@pytest.fixture
def remote() -> FakeCatalogService:
    return FakeCatalogService()


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def notifications(bus: NotificationBus) -> list[Notification]:
    """Every notification published on ``bus``, in order."""
    received: list[Notification] = []
    for notification_type in ALL_NOTIFICATIONS:
        bus.subscribe(notification_type, received.append)
    return received


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manifest_store(settings: Settings) -> ManifestStore:
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    store = ManifestStore(settings.manifest_path)
    store.load()
    return store


@pytest.fixture
def item_cache(settings: Settings) -> ItemCache:
    cache = ItemCache(settings.mods_dir)
    cache.load()
    return cache


@pytest.fixture
def download_responses() -> dict[str, bytes]:
    """Bodies served by the mock download transport, keyed by URL."""
    return {}


@pytest.fixture
def download_transport(download_responses: dict[str, bytes]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        body = download_responses.get(str(request.url))
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
async def http_client(download_transport: httpx.MockTransport) -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=download_transport) as client:
        yield client


@pytest.fixture
def make_engine(
    settings: Settings,
    remote: FakeCatalogService,
    bus: NotificationBus,
    clock: FakeClock,
    download_transport: httpx.MockTransport,
) -> Callable[[], SyncEngine]:
    """Factory building engines over the shared fake remote and cache directory."""

    def factory() -> SyncEngine:
        client = httpx.AsyncClient(transport=download_transport)
        return SyncEngine(settings, remote, client, bus=bus, clock=clock)

    return factory


@pytest.fixture
async def engine(make_engine: Callable[[], SyncEngine]) -> AsyncGenerator[SyncEngine]:
    sync_engine = make_engine()
    try:
        yield sync_engine
    finally:
        await sync_engine.close()
