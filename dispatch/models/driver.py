"""Driver and location models."""

from enum import Enum

from pydantic import BaseModel, Field


class DriverStatus(str, Enum):
    """Driver status states."""

    PENDING = "pending"
    OFFLINE = "offline"
    ONLINE = "online"
    ASSIGNED = "assigned"
    BUSY = "busy"


class GeoPoint(BaseModel):
    """Geographic location."""

    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class Driver(BaseModel):
    """Courier profile keyed by platform user id."""

    id: int
    name: str = ""
    username: str | None = None
    status: DriverStatus = DriverStatus.PENDING
    lang: str = "en"
    last_location: GeoPoint | None = None

    @property
    def is_available(self) -> bool:
        """Check if driver can take a new assignment."""
        return self.status == DriverStatus.ONLINE

    @property
    def is_connected(self) -> bool:
        return self.status in (DriverStatus.ONLINE, DriverStatus.ASSIGNED, DriverStatus.BUSY)

    @property
    def display_name(self) -> str:
        return self.name or str(self.id)
