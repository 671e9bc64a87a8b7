"""Data models for the dispatch service."""

from dispatch.models.customer import Customer
from dispatch.models.driver import Driver, DriverStatus, GeoPoint
from dispatch.models.events import Contact, ForwardInfo, InboundEvent, InboundMedia
from dispatch.models.order import (
    EditField,
    MediaAttachment,
    Order,
    OrderLocation,
    OrderStatus,
    PaymentMethod,
    PendingEdit,
)
from dispatch.models.payment import QRCode, Shift, ShiftProfile
from dispatch.models.session import LiveSession, SessionState
from dispatch.models.settings import RuntimeSettings

__all__ = [
    # Customer
    "Customer",
    # Driver
    "Driver",
    "DriverStatus",
    "GeoPoint",
    # Events
    "Contact",
    "ForwardInfo",
    "InboundEvent",
    "InboundMedia",
    # Order
    "EditField",
    "MediaAttachment",
    "Order",
    "OrderLocation",
    "OrderStatus",
    "PaymentMethod",
    "PendingEdit",
    # Payment
    "QRCode",
    "Shift",
    "ShiftProfile",
    # Session
    "LiveSession",
    "SessionState",
    # Settings
    "RuntimeSettings",
]
