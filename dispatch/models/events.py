"""Inbound events delivered by the messaging gateway."""

from typing import Literal

from pydantic import BaseModel, Field

from dispatch.models.driver import GeoPoint


class Contact(BaseModel):
    """A shared contact card."""

    user_id: int | None = None
    first_name: str = ""
    last_name: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class InboundMedia(BaseModel):
    """Photo or document payload."""

    type: Literal["photo", "document"]
    file_id: str
    name: str | None = None


class ForwardInfo(BaseModel):
    """Origin of a forwarded message."""

    user_id: int | None = None
    name: str = ""


class InboundEvent(BaseModel):
    """Structured event tagged with sender and chat.

    Exactly one payload is expected in practice; the routers check
    ``action`` first, then ``forward``, ``text``, ``location``, ``contact``
    and ``media``.
    """

    sender_id: int
    chat_id: int
    sender_name: str = ""
    username: str | None = None
    chat_type: Literal["private", "group", "supergroup", "channel"] = "private"

    text: str | None = None
    caption: str | None = None
    location: GeoPoint | None = None
    contact: Contact | None = None
    media: InboundMedia | None = None
    action: str | None = Field(default=None, description="verb:arg1:arg2 callback")
    forward: ForwardInfo | None = None

    @property
    def is_command(self) -> bool:
        return bool(self.text and self.text.startswith("/"))

    @property
    def action_parts(self) -> list[str]:
        return self.action.split(":") if self.action else []
