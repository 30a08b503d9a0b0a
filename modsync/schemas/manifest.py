"""Persisted engine state: manifest and authenticated session."""

from __future__ import annotations

from pydantic import BaseModel, Field

from modsync.schemas.catalog import CatalogProfile
from modsync.schemas.event import Event


class Manifest(BaseModel):
    """Durable record of sync progress, pending events and catalog metadata."""

    last_sync_timestamp: int = 0
    pending_events: list[Event] = Field(default_factory=list)
    catalog_profile: CatalogProfile = Field(default_factory=CatalogProfile)
    image_index: dict[str, str] = Field(default_factory=dict)

    def pending_event_ids(self) -> set[int]:
        return {event.id for event in self.pending_events}


class UserProfile(BaseModel):
    """Public profile of the authenticated user."""

    id: int
    username: str = ""
    name_id: str = ""
    date_online: int = 0
    profile_url: str = ""


class AuthenticatedUser(BaseModel):
    """Session record persisted while a user is logged in."""

    oauth_token: str
    profile: UserProfile | None = None
    subscribed_item_ids: list[int] = Field(default_factory=list)
