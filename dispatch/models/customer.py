"""Customer-related models."""

from pydantic import BaseModel


class Customer(BaseModel):
    """Customer profile, created on first contact."""

    id: int
    name: str = ""
    username: str | None = None
    lang: str = "en"
