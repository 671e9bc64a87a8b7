"""QR payment codes and shift profiles."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from dispatch.models.order import MediaAttachment


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QRCode(BaseModel):
    """A payment code the operator can send to a customer."""

    id: str
    code: str
    enabled: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    media: MediaAttachment | None = None

    def matches(self, media: MediaAttachment | None, text: str | None) -> bool:
        """Check whether a customer's proof of payment refers to this code."""
        if self.media is not None and media is not None:
            if self.media.type == media.type and self.media.file_id and (
                self.media.file_id == media.file_id
            ):
                return True
        if text:
            if self.media is not None and self.media.type == "text" and self.media.text:
                if self.media.text in text:
                    return True
            return self.code in text
        return False


class Shift(BaseModel):
    """One working shift of a profile."""

    started_at: datetime
    closed_at: datetime | None = None
    connected_drivers: list[int] = Field(default_factory=list)
    stars: int = 0


class ShiftProfile(BaseModel):
    """Operator-defined profile that groups shifts and collects ratings."""

    id: int
    name: str
    pin: str = Field(pattern=r"^[0-9]{4}$")
    shifts: list[Shift] = Field(default_factory=list)
    active_shift: Shift | None = None
    total_stars: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
