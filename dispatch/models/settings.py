"""Operator-tunable settings persisted with the durable document."""

from pydantic import BaseModel, ConfigDict, Field


class RuntimeSettings(BaseModel):
    """Process-wide settings mutated only by operator commands."""

    model_config = ConfigDict(extra="allow")

    archive_days: int = Field(default=7, ge=1)
    emojis_mode: bool = False

    def set_value(self, key: str, value: int) -> None:
        """Set a known or ad hoc numeric setting."""
        if key in ("archiveDays", "archive_days"):
            self.archive_days = max(1, value)
        elif key in ("emojisMode", "emojis_mode"):
            self.emojis_mode = bool(value)
        else:
            setattr(self, key, value)
