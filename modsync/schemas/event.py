"""Remote change event schemas."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Change event types the engine knows how to apply."""

    MOD_AVAILABLE = "MOD_AVAILABLE"
    MOD_UNAVAILABLE = "MOD_UNAVAILABLE"
    MOD_EDITED = "MOD_EDITED"
    MODFILE_CHANGED = "MODFILE_CHANGED"


class Event(BaseModel):
    """A remote notification of a state change to an item.

    ``event_type`` is kept as the raw string so that types this engine does
    not understand still parse and can be logged before being dropped.
    """

    id: int
    item_id: int
    event_type: str
    date_added: int = 0

    @property
    def known_type(self) -> EventType | None:
        try:
            return EventType(self.event_type)
        except ValueError:
            return None
