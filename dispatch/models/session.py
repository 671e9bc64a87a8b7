"""Live-location sharing session model."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from dispatch.models.driver import GeoPoint


class SessionState(str, Enum):
    """Lifecycle of a live-location session."""

    ARMED = "armed"
    EXPIRED = "expired"
    ENDED = "ended"


class LiveSession(BaseModel):
    """Time-boxed grant to forward a driver's location to a customer."""

    id: str
    driver_id: int
    order_id: int
    started_at: datetime
    expires_at: datetime
    state: SessionState = SessionState.ARMED
    ended_at: datetime | None = None
    last_location: GeoPoint | None = None

    @classmethod
    def session_id(cls, driver_id: int, order_id: int, started_at: datetime) -> str:
        return f"{driver_id}:{order_id}:{int(started_at.timestamp() * 1000)}"

    @property
    def ended(self) -> bool:
        return self.state != SessionState.ARMED

    def is_active(self, now: datetime) -> bool:
        """Armed and not yet past its expiry."""
        return not self.ended and self.expires_at > now

    def end(self, now: datetime, state: SessionState = SessionState.ENDED) -> None:
        self.state = state
        self.ended_at = now
