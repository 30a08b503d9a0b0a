"""Subscription reconciliation against the remote subscription list."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from modsync.services.notifications import SubscriptionAdded, SubscriptionRemoved
from modsync.services.pagination import fetch_all_results

if TYPE_CHECKING:
    from collections.abc import Iterable

    from modsync.remote.base import CatalogService
    from modsync.schemas.catalog import Item
    from modsync.schemas.page import Page, Pagination
    from modsync.services.notifications import NotificationBus
    from modsync.services.session_service import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionDiff:
    """Ids that appeared and disappeared between two subscription snapshots."""

    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def diff_subscriptions(previous: Iterable[int], current: Iterable[int]) -> SubscriptionDiff:
    """Compare two id collections; the result lists are sorted and duplicate-free."""
    before = set(previous)
    after = set(current)
    return SubscriptionDiff(added=sorted(after - before), removed=sorted(before - after))


class SubscriptionReconciler:
    """Keeps the session's subscribed ids in step with the remote service."""

    def __init__(
        self,
        remote: CatalogService,
        session: SessionManager,
        bus: NotificationBus,
        *,
        game_id: int,
        page_limit: int,
    ) -> None:
        self.remote = remote
        self.session = session
        self.bus = bus
        self.game_id = game_id
        self.page_limit = page_limit

    async def refresh(self) -> SubscriptionDiff | None:
        """Fetch every subscription for this game and apply it.

        Returns None when nobody is logged in. An auth rejection logs the
        user out and propagates.
        """
        if not self.session.is_authenticated:
            return None
        filters = {"game_id": str(self.game_id)}

        async def fetch(token: str) -> list[Item]:
            async def query(pagination: Pagination) -> Page[Item]:
                return await self.remote.list_subscriptions(token, filters, pagination)

            return await fetch_all_results(query, self.page_limit)

        items = await self.session.call(fetch)
        return self.apply([item.id for item in items])

    def apply(self, current_ids: Iterable[int]) -> SubscriptionDiff | None:
        """Replace the stored subscriptions, persist, then notify additions and removals."""
        user = self.session.user
        if user is None:
            return None
        current = list(dict.fromkeys(current_ids))
        diff = diff_subscriptions(user.subscribed_item_ids, current)
        user.subscribed_item_ids = current
        self.session.save()
        for item_id in diff.added:
            self.bus.publish(SubscriptionAdded(item_id))
        for item_id in diff.removed:
            self.bus.publish(SubscriptionRemoved(item_id))
        if diff.changed:
            logger.info(
                "Subscriptions changed: %d added, %d removed", len(diff.added), len(diff.removed)
            )
        return diff
