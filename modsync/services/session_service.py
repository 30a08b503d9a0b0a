"""Authenticated session: login, logout and subscription calls."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from modsync.exceptions import AuthError
from modsync.schemas.manifest import AuthenticatedUser
from modsync.services.notifications import SubscriptionAdded, SubscriptionRemoved, UserLoggedOut

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from modsync.filesystem.manifest_store import SessionStore
    from modsync.remote.base import CatalogService
    from modsync.services.notifications import NotificationBus

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NotAuthenticatedError(AuthError):
    """Raised when an operation needs a session and there is none."""

    def __init__(self) -> None:
        super().__init__(401, "Not logged in")


class SessionManager:
    """Holds the current :class:`AuthenticatedUser` and keeps ``user.data`` in step.

    Any call rejected with :class:`AuthError` logs the user out before the
    error propagates.
    """

    def __init__(self, remote: CatalogService, store: SessionStore, bus: NotificationBus) -> None:
        self.remote = remote
        self.store = store
        self.bus = bus
        self.user: AuthenticatedUser | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def load(self) -> AuthenticatedUser | None:
        self.user = self.store.load()
        if self.user is not None:
            logger.info("Restored session with %d subscriptions", len(self.user.subscribed_item_ids))
        return self.user

    def save(self) -> None:
        if self.user is not None:
            self.store.save(self.user)

    def require_token(self) -> str:
        if self.user is None:
            raise NotAuthenticatedError
        return self.user.oauth_token

    async def call(self, request: Callable[[str], Awaitable[T]]) -> T:
        """Run ``request(token)``; an auth rejection ends the session and re-raises."""
        token = self.require_token()
        try:
            return await request(token)
        except AuthError:
            logger.warning("Session token rejected, logging out")
            self.logout()
            raise

    async def validate(self) -> bool:
        """Check the stored token with the remote service, refreshing the profile.

        Returns False (and logs out) if the token is rejected. Other failures
        propagate and leave the session as it was.
        """
        if self.user is None:
            return False
        try:
            profile = await self.call(self.remote.get_authenticated_user)
        except AuthError:
            return False
        self.user = self.user.model_copy(update={"profile": profile})
        self.save()
        return True

    async def login(self, oauth_token: str) -> AuthenticatedUser:
        """Start a session with an already-issued OAuth token."""
        profile = await self.remote.get_authenticated_user(oauth_token)
        self.user = AuthenticatedUser(oauth_token=oauth_token, profile=profile)
        self.save()
        logger.info("Logged in as %s", profile.username or profile.id)
        return self.user

    def logout(self) -> None:
        """Forget the session. Idempotent; observers hear about it only once."""
        was_authenticated = self.user is not None
        self.user = None
        self.store.delete()
        if was_authenticated:
            self.bus.publish(UserLoggedOut())

    def is_subscribed(self, item_id: int) -> bool:
        return self.user is not None and item_id in self.user.subscribed_item_ids

    async def subscribe(self, item_id: int) -> None:
        await self.call(lambda token: self.remote.subscribe(token, item_id))
        if self.user is not None and item_id not in self.user.subscribed_item_ids:
            self.user.subscribed_item_ids.append(item_id)
            self.save()
            self.bus.publish(SubscriptionAdded(item_id))

    async def unsubscribe(self, item_id: int) -> None:
        await self.call(lambda token: self.remote.unsubscribe(token, item_id))
        if self.user is not None and item_id in self.user.subscribed_item_ids:
            self.user.subscribed_item_ids.remove(item_id)
            self.save()
            self.bus.publish(SubscriptionRemoved(item_id))
