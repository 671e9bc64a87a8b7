"""In-memory entity registry and its durable document shape."""

from datetime import datetime
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field

from dispatch.models.customer import Customer
from dispatch.models.driver import Driver, DriverStatus
from dispatch.models.order import Order, OrderStatus, PaymentMethod, PendingEdit
from dispatch.models.payment import QRCode, ShiftProfile
from dispatch.models.session import LiveSession
from dispatch.models.settings import RuntimeSettings

SECTION_STATUSES = {
    "ORDERS": (OrderStatus.NEW,),
    "ACTIVE": (OrderStatus.ASSIGNED, OrderStatus.PICKEDUP, OrderStatus.ARRIVED),
    "COMPLETED": (OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.ARCHIVED),
}

ACTIVE_STATUSES = SECTION_STATUSES["ACTIVE"]


class DurableDocument(BaseModel):
    """Everything persisted, as one JSON document."""

    model_config = ConfigDict(populate_by_name=True)

    orders: list[Order] = Field(default_factory=list)
    drivers: list[Driver] = Field(default_factory=list)
    customers: list[Customer] = Field(default_factory=list)
    sessions: list[LiveSession] = Field(default_factory=list)
    qr_codes: list[QRCode] = Field(default_factory=list, alias="qrCodes")
    shift_profiles: list[ShiftProfile] = Field(default_factory=list, alias="shiftProfiles")
    order_counter: int = Field(default=1, ge=1, alias="orderCounter")
    profile_counter: int = Field(default=1, ge=1, alias="profileCounter")
    settings: RuntimeSettings = Field(default_factory=RuntimeSettings)


class EntityRegistry:
    """Collections of orders, drivers, customers and sessions keyed by id."""

    def __init__(self, archive_days: int = 7) -> None:
        self.orders: dict[int, Order] = {}
        self.drivers: dict[int, Driver] = {}
        self.customers: dict[int, Customer] = {}
        self.sessions: dict[str, LiveSession] = {}
        self.qr_codes: dict[str, QRCode] = {}
        self.shift_profiles: dict[int, ShiftProfile] = {}
        self.order_counter = 1
        self.profile_counter = 1
        self.settings = RuntimeSettings(archive_days=archive_days)

        # Per-operator edit tokens; runtime only
        self.pending_edits: dict[int, PendingEdit] = {}

    # Document conversion

    def to_document(self) -> dict[str, Any]:
        """Snapshot the registry as a JSON-ready dict."""
        document = DurableDocument(
            orders=list(self.orders.values()),
            drivers=list(self.drivers.values()),
            customers=list(self.customers.values()),
            sessions=list(self.sessions.values()),
            qr_codes=list(self.qr_codes.values()),
            shift_profiles=list(self.shift_profiles.values()),
            order_counter=self.order_counter,
            profile_counter=self.profile_counter,
            settings=self.settings,
        )
        return document.model_dump(mode="json", by_alias=True)

    def replace_from(self, document: DurableDocument) -> None:
        """Swap in the contents of a loaded document."""
        self.orders = {o.id: o for o in document.orders}
        self.drivers = {d.id: d for d in document.drivers}
        self.customers = {c.id: c for c in document.customers}
        self.sessions = {s.id: s for s in document.sessions}
        self.qr_codes = {q.id: q for q in document.qr_codes}
        self.shift_profiles = {p.id: p for p in document.shift_profiles}
        self.order_counter = document.order_counter
        self.profile_counter = document.profile_counter
        self.settings = document.settings
        self.pending_edits.clear()

    def clear(self) -> None:
        self.replace_from(DurableDocument(settings=RuntimeSettings(
            archive_days=self.settings.archive_days,
        )))

    # Counters

    def highest_order_id(self) -> int:
        return max(self.orders, default=0)

    def next_order_id(self) -> int:
        """Allocate an order id, never reusing one already present."""
        order_id = max(self.order_counter, self.highest_order_id() + 1)
        self.order_counter = order_id + 1
        return order_id

    def next_profile_id(self) -> int:
        profile_id = max(self.profile_counter, max(self.shift_profiles, default=0) + 1)
        self.profile_counter = profile_id + 1
        return profile_id

    # Lookups

    def get_order(self, order_id: int | None) -> Order | None:
        if order_id is None:
            return None
        return self.orders.get(order_id)

    def get_driver(self, driver_id: int | None) -> Driver | None:
        if driver_id is None:
            return None
        return self.drivers.get(driver_id)

    def get_customer(self, customer_id: int | None) -> Customer | None:
        if customer_id is None:
            return None
        return self.customers.get(customer_id)

    def touch_customer(
        self,
        customer_id: int,
        name: str = "",
        username: str | None = None,
    ) -> Customer:
        """Return the customer, creating it on first contact."""
        customer = self.customers.get(customer_id)
        if customer is None:
            customer = Customer(id=customer_id, name=name, username=username)
            self.customers[customer_id] = customer
        return customer

    def find_user_by_username(self, username: str) -> int | None:
        username = username.lstrip("@")
        for customer in self.customers.values():
            if customer.username == username:
                return customer.id
        for driver in self.drivers.values():
            if driver.username == username:
                return driver.id
        return None

    def online_drivers(self) -> list[Driver]:
        return [d for d in self.drivers.values() if d.status == DriverStatus.ONLINE]

    def connected_drivers(self) -> list[Driver]:
        return [d for d in self.drivers.values() if d.is_connected]

    def find_available_driver(self) -> Driver | None:
        """First online driver in registration order."""
        for driver in self.drivers.values():
            if driver.is_available:
                return driver
        return None

    def orders_by_section(self, section: str) -> list[Order]:
        statuses = SECTION_STATUSES.get(section.upper(), ())
        return [o for o in self.orders.values() if o.status in statuses]

    def active_orders_for_driver(self, driver_id: int) -> list[Order]:
        return [
            o for o in self.orders.values()
            if o.driver_id == driver_id and o.status in ACTIVE_STATUSES
        ]

    def completed_orders_for_driver(self, driver_id: int) -> list[Order]:
        return [
            o for o in self.orders.values()
            if o.driver_id == driver_id and o.status == OrderStatus.COMPLETED
        ]

    def latest_new_order_for_customer(self, customer_id: int) -> Order | None:
        for order in reversed(list(self.orders.values())):
            if order.customer_id == customer_id and order.status == OrderStatus.NEW:
                return order
        return None

    def latest_unpaid_qr_order(self, customer_id: int) -> Order | None:
        for order in reversed(list(self.orders.values())):
            if (
                order.customer_id == customer_id
                and order.payment_method == PaymentMethod.QR
                and not order.paid
            ):
                return order
        return None

    def iter_active_sessions(self, now: datetime) -> Iterator[LiveSession]:
        return (s for s in self.sessions.values() if s.is_active(now))

    def active_session_for_driver(self, driver_id: int, now: datetime) -> LiveSession | None:
        for session in self.iter_active_sessions(now):
            if session.driver_id == driver_id:
                return session
        return None

    def stats(self) -> dict[str, int]:
        """Counts shown on the operator stats screen."""
        return {
            "total_orders": len(self.orders),
            "active": len(self.orders_by_section("ACTIVE")),
            "completed": len(self.orders_by_section("COMPLETED")),
            "drivers_pending": sum(
                1 for d in self.drivers.values() if d.status == DriverStatus.PENDING
            ),
        }
