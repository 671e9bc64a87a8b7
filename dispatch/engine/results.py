"""Outcome of an engine operation."""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class Outcome(str, Enum):
    """Why an operation did or did not change state."""

    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    NO_DRIVER = "no_driver"
    LOCKED = "locked"


class ActionResult(BaseModel):
    """Result handed back to the caller of an engine operation.

    Rejected operations are ordinary results, not exceptions; ``message``
    is the plain-text notice shown to the user.
    """

    outcome: Outcome = Outcome.OK
    message: str = ""
    order_id: int | None = None
    data: dict[str, Any] = {}

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.OK

    @classmethod
    def success(cls, message: str = "", order_id: int | None = None, **data: Any) -> "ActionResult":
        return cls(outcome=Outcome.OK, message=message, order_id=order_id, data=data)

    @classmethod
    def rejected(
        cls,
        outcome: Outcome,
        message: str,
        order_id: int | None = None,
        **data: Any,
    ) -> "ActionResult":
        return cls(outcome=outcome, message=message, order_id=order_id, data=data)
