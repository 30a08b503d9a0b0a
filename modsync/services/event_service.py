"""Event processing: apply remote change events to the local item cache.

Events are queued in the manifest before they are applied and leave the
queue only once their effect is on disk, so an interrupted pass resumes
where it stopped. Application is idempotent; replaying an event is harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from modsync.exceptions import ModSyncError, NotFoundError
from modsync.schemas.event import Event, EventType
from modsync.services.notifications import (
    ItemAdded,
    ItemRemoved,
    ItemUpdated,
    ModfileChanged,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from modsync.filesystem.item_cache import ItemCache
    from modsync.filesystem.manifest_store import ManifestStore
    from modsync.remote.base import CatalogService
    from modsync.services.notifications import NotificationBus

logger = logging.getLogger(__name__)


@dataclass
class EventReport:
    """Outcome of one :meth:`EventProcessor.process` call, by event id."""

    applied: list[int] = field(default_factory=list)
    dropped: list[int] = field(default_factory=list)
    pending: list[int] = field(default_factory=list)


class EventProcessor:
    """Applies queued events in listing order and dequeues each once it sticks.

    ``is_retained`` tells whether an item must survive ``MOD_UNAVAILABLE``
    (e.g. because the user is subscribed to it).
    """

    def __init__(
        self,
        remote: CatalogService,
        items: ItemCache,
        manifest_store: ManifestStore,
        bus: NotificationBus,
        is_retained: Callable[[int], bool],
    ) -> None:
        self.remote = remote
        self.items = items
        self.manifest_store = manifest_store
        self.bus = bus
        self.is_retained = is_retained

    @property
    def pending_events(self) -> list[Event]:
        return self.manifest_store.manifest.pending_events

    def enqueue(self, events: Iterable[Event]) -> int:
        """Append events not already queued (by id). Returns how many were added."""
        queued = self.manifest_store.manifest.pending_event_ids()
        added = 0
        for event in events:
            if event.id in queued:
                logger.debug("Event %d already queued", event.id)
                continue
            self.pending_events.append(event)
            queued.add(event.id)
            added += 1
        if added:
            self.manifest_store.save()
        return added

    async def process(self, events: Iterable[Event] = ()) -> EventReport:
        """Queue ``events`` and try to apply everything in the queue, oldest first.

        Each event is awaited before the next one starts. An event that
        fails to apply stays queued for the next call.
        """
        self.enqueue(events)
        report = EventReport()
        for event in list(self.pending_events):
            try:
                applied = await self._apply(event)
            except NotFoundError as exc:
                logger.warning("Dropping event %d for item %d: %s", event.id, event.item_id, exc)
                self._resolve(event)
                report.dropped.append(event.id)
                continue
            except ModSyncError as exc:
                logger.warning(
                    "Event %d (%s) for item %d not applied, will retry: %s",
                    event.id,
                    event.event_type,
                    event.item_id,
                    exc,
                )
                report.pending.append(event.id)
                continue
            self._resolve(event)
            (report.applied if applied else report.dropped).append(event.id)
        return report

    def _resolve(self, event: Event) -> None:
        manifest = self.manifest_store.manifest
        manifest.pending_events = [e for e in manifest.pending_events if e.id != event.id]
        self.manifest_store.save()

    async def _apply(self, event: Event) -> bool:
        """Apply one event. Returns False if it was dropped without effect."""
        event_type = event.known_type
        if event_type == EventType.MOD_AVAILABLE:
            await self._on_available(event)
        elif event_type == EventType.MOD_UNAVAILABLE:
            self._on_unavailable(event)
        elif event_type == EventType.MOD_EDITED:
            await self._on_edited(event)
        elif event_type == EventType.MODFILE_CHANGED:
            return await self._on_modfile_changed(event)
        else:
            logger.error(
                "Dropping event %d with unknown type %r for item %d",
                event.id,
                event.event_type,
                event.item_id,
            )
            return False
        return True

    async def _on_available(self, event: Event) -> None:
        item = await self.remote.get_item(event.item_id)
        already_cached = item.id in self.items
        self.items.put(item)
        if already_cached:
            self.bus.publish(ItemUpdated(item.id))
        else:
            logger.info("Item %d (%s) is now available", item.id, item.name)
            self.bus.publish(ItemAdded(item))

    def _on_unavailable(self, event: Event) -> None:
        item_id = event.item_id
        if self.is_retained(item_id):
            logger.info("Item %d unavailable remotely but retained locally", item_id)
            return
        if self.items.remove(item_id):
            logger.info("Item %d is no longer available, removed", item_id)
            self.bus.publish(ItemRemoved(item_id))

    async def _on_edited(self, event: Event) -> None:
        item = await self.remote.get_item(event.item_id)
        cached = self.items.get(item.id)
        self.items.put(cached.merged_with(item) if cached is not None else item)
        self.bus.publish(ItemUpdated(item.id))

    async def _on_modfile_changed(self, event: Event) -> bool:
        cached = self.items.get(event.item_id)
        if cached is None:
            logger.info("Modfile changed for uncached item %d, ignoring", event.item_id)
            return False
        fetched = await self.remote.get_item(event.item_id)
        merged = cached.merged_with(fetched)
        self.items.put(merged)
        if merged.modfile is not None:
            self.items.store_file_record(merged.modfile)
        self.bus.publish(ModfileChanged(merged.id, merged.modfile))
        return True
