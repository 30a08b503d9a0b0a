"""Tests for login, logout and subscription calls."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from modsync.exceptions import AuthError, TransientNetworkError
from modsync.filesystem.manifest_store import SessionStore
from modsync.schemas.manifest import AuthenticatedUser
from modsync.services.notifications import SubscriptionAdded, SubscriptionRemoved, UserLoggedOut
from modsync.services.session_service import NotAuthenticatedError, SessionManager

if TYPE_CHECKING:
    from modsync.config import Settings
    from modsync.services.notifications import Notification, NotificationBus
    from tests.fakes import FakeCatalogService


@pytest.fixture
def session(settings: Settings, remote: FakeCatalogService, bus: NotificationBus) -> SessionManager:
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    return SessionManager(remote, SessionStore(settings.user_data_path), bus)


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_persists_session(
        self, session: SessionManager, remote: FakeCatalogService, settings: Settings
    ) -> None:
        remote.add_user("good-token", username="alice")

        user = await session.login("good-token")

        assert user.profile is not None
        assert user.profile.username == "alice"
        assert session.is_authenticated
        stored = SessionStore(settings.user_data_path).load()
        assert stored is not None
        assert stored.oauth_token == "good-token"

    @pytest.mark.asyncio
    async def test_rejected_login_keeps_logged_out(self, session: SessionManager) -> None:
        with pytest.raises(AuthError):
            await session.login("bad-token")
        assert session.user is None

    @pytest.mark.asyncio
    async def test_validate_with_revoked_token_logs_out(
        self,
        session: SessionManager,
        settings: Settings,
        notifications: list[Notification],
    ) -> None:
        SessionStore(settings.user_data_path).save(AuthenticatedUser(oauth_token="revoked"))
        session.load()

        assert await session.validate() is False
        assert session.user is None
        assert not settings.user_data_path.exists()
        assert notifications == [UserLoggedOut()]

    @pytest.mark.asyncio
    async def test_validate_network_failure_keeps_session(
        self, session: SessionManager, remote: FakeCatalogService, settings: Settings
    ) -> None:
        remote.add_user("tok")
        SessionStore(settings.user_data_path).save(AuthenticatedUser(oauth_token="tok"))
        session.load()
        remote.failures["get_authenticated_user"] = TransientNetworkError("timeout")

        with pytest.raises(TransientNetworkError):
            await session.validate()
        assert session.is_authenticated

    def test_logout_is_idempotent(
        self, session: SessionManager, notifications: list[Notification]
    ) -> None:
        session.user = AuthenticatedUser(oauth_token="tok")
        session.logout()
        session.logout()
        assert notifications == [UserLoggedOut()]


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(
        self,
        session: SessionManager,
        remote: FakeCatalogService,
        notifications: list[Notification],
    ) -> None:
        remote.add_user("tok")
        await session.login("tok")

        await session.subscribe(5)
        await session.subscribe(5)
        assert session.is_subscribed(5)
        assert remote.subscriptions["tok"] == [5]

        await session.unsubscribe(5)
        assert not session.is_subscribed(5)
        assert notifications == [SubscriptionAdded(5), SubscriptionRemoved(5)]

    @pytest.mark.asyncio
    async def test_subscribe_without_session_raises(self, session: SessionManager) -> None:
        with pytest.raises(NotAuthenticatedError):
            await session.subscribe(5)

    @pytest.mark.asyncio
    async def test_auth_error_during_call_forces_logout(
        self,
        session: SessionManager,
        remote: FakeCatalogService,
        notifications: list[Notification],
    ) -> None:
        remote.add_user("tok")
        await session.login("tok")
        remote.failures["subscribe"] = AuthError(403)

        with pytest.raises(AuthError):
            await session.subscribe(5)
        assert session.user is None
        assert notifications == [UserLoggedOut()]
