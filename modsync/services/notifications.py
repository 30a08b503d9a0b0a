"""Typed observer notifications published by the sync engine.

Handlers run synchronously on the event loop thread, in subscription order.
A failing handler is logged and does not stop the others.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from modsync.schemas.catalog import FileRecord, Item

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """Base class for everything published on the bus."""


@dataclass(frozen=True)
class ItemAdded(Notification):
    item: Item


@dataclass(frozen=True)
class ItemUpdated(Notification):
    item_id: int


@dataclass(frozen=True)
class ItemRemoved(Notification):
    item_id: int


@dataclass(frozen=True)
class ModfileChanged(Notification):
    item_id: int
    modfile: FileRecord | None


@dataclass(frozen=True)
class SubscriptionAdded(Notification):
    item_id: int


@dataclass(frozen=True)
class SubscriptionRemoved(Notification):
    item_id: int


@dataclass(frozen=True)
class UserLoggedOut(Notification):
    pass


@dataclass(frozen=True)
class LogoUpdated(Notification):
    item_id: int
    version: str
    path: Path


@dataclass(frozen=True)
class GalleryImageUpdated(Notification):
    item_id: int
    filename: str
    version: str
    path: Path


N = TypeVar("N", bound=Notification)


@dataclass
class Subscription:
    """Handle returned by :meth:`NotificationBus.subscribe`."""

    notification_type: type[Notification]
    handler: Callable[[Any], None]
    active: bool = field(default=True)

    def cancel(self) -> None:
        self.active = False


class NotificationBus:
    """Dispatches notifications to handlers registered per notification type."""

    def __init__(self) -> None:
        self._handlers: dict[type[Notification], list[Subscription]] = defaultdict(list)

    def subscribe(self, notification_type: type[N], handler: Callable[[N], None]) -> Subscription:
        sub = Subscription(notification_type=notification_type, handler=handler)
        self._handlers[notification_type].append(sub)
        return sub

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.cancel()
        subs = self._handlers.get(subscription.notification_type)
        if subs is not None:
            subs[:] = [s for s in subs if s is not subscription]

    def publish(self, notification: Notification) -> None:
        for sub in list(self._handlers.get(type(notification), [])):
            if not sub.active:
                continue
            try:
                sub.handler(notification)
            except Exception:
                logger.exception("Handler failed for %s", type(notification).__name__)
