"""Order-related data models."""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from dispatch.models.driver import DriverStatus, GeoPoint


class OrderStatus(str, Enum):
    """Order status progression."""

    NEW = "new"
    ASSIGNED = "assigned"
    PICKEDUP = "pickedup"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


TERMINAL_STATUSES = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.ARCHIVED}
)

STATUS_EMOJI = {
    OrderStatus.NEW: "🆕",
    OrderStatus.ASSIGNED: "🛍️",
    OrderStatus.PICKEDUP: "⚡",
    OrderStatus.ARRIVED: "🏁",
    OrderStatus.COMPLETED: "✅",
    OrderStatus.CANCELLED: "❌",
    OrderStatus.ARCHIVED: "🗄️",
}


class PaymentMethod(str, Enum):
    """How the customer settles the order."""

    CASH = "CASH"
    QR = "QR"


class EditField(str, Enum):
    """Order fields an operator can fill from the next inbound message."""

    CUSTOMER_NAME = "customer_name"
    TOTAL_AMOUNT = "total_amount"
    GIVEN_CASH = "given_cash"
    ITEMS = "items"
    MEDIA = "media"
    LOCATION = "location"
    ASSIGN_CUSTOMER = "assign_customer"


class MediaAttachment(BaseModel):
    """Photo, document or text attached to an order or QR code."""

    type: Literal["photo", "document", "text"]
    file_id: str | None = None
    name: str | None = None
    text: str | None = None


class OrderLocation(BaseModel):
    """Delivery destination: free-form text, coordinates, or both."""

    text: str | None = None
    point: GeoPoint | None = None


class Order(BaseModel):
    """Complete order details."""

    id: int
    status: OrderStatus = OrderStatus.NEW

    # Customer
    customer_id: int | None = None
    customer_name: str = ""

    # Assignment
    driver_id: int | None = None
    driver_name: str = ""
    driver_status: DriverStatus | None = None
    driver_assigned: bool = False

    location: OrderLocation | None = None

    # Payment
    total_amount: Decimal | None = None
    payment_method: PaymentMethod | None = None
    paid: bool = False
    given_cash: Decimal | None = None
    change_cash: Decimal | None = None

    items: str = ""
    media: MediaAttachment | None = None
    feedback: int | None = Field(default=None, ge=1, le=5)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def destination(self) -> GeoPoint | None:
        """Coordinates of the delivery destination, if known."""
        if self.location is None:
            return None
        return self.location.point

    @property
    def label(self) -> str:
        return f"#{self.id:04d}"

    def set_given_cash(self, amount: Decimal) -> None:
        """Record cash handed over and recompute the change owed."""
        self.given_cash = amount
        if self.total_amount is None:
            self.change_cash = None
        else:
            self.change_cash = amount - self.total_amount

    def append_items(self, text: str) -> None:
        self.items = f"{self.items.strip()}\n{text}" if self.items.strip() else text


class PendingEdit(BaseModel):
    """An operator's request to fill an order field from the next message."""

    operator_id: int
    order_id: int
    field: EditField | None = None
