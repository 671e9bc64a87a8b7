"""Tests for the entity registry and the order transition table."""

from datetime import datetime, timedelta, timezone

from dispatch.models.driver import Driver, DriverStatus
from dispatch.models.order import Order, OrderStatus, PaymentMethod
from dispatch.models.session import LiveSession
from dispatch.state.registry import EntityRegistry
from dispatch.state.workflow import OrderTransitions


def test_manual_transitions() -> None:
    assert OrderTransitions.can_transition(OrderStatus.NEW, OrderStatus.ASSIGNED)
    assert OrderTransitions.can_transition(OrderStatus.PICKEDUP, OrderStatus.ARRIVED)
    assert OrderTransitions.can_transition(OrderStatus.ASSIGNED, OrderStatus.COMPLETED)
    assert not OrderTransitions.can_transition(OrderStatus.ASSIGNED, OrderStatus.ARRIVED)
    assert not OrderTransitions.can_transition(OrderStatus.COMPLETED, OrderStatus.NEW)
    assert not OrderTransitions.can_transition(OrderStatus.ARCHIVED, OrderStatus.CANCELLED)


def test_auto_arrival_may_skip_pickup() -> None:
    assert OrderTransitions.can_auto_arrive(OrderStatus.NEW)
    assert OrderTransitions.can_auto_arrive(OrderStatus.ASSIGNED)
    assert OrderTransitions.can_auto_arrive(OrderStatus.PICKEDUP)
    assert not OrderTransitions.can_auto_arrive(OrderStatus.ARRIVED)
    assert not OrderTransitions.can_auto_arrive(OrderStatus.COMPLETED)


def test_next_order_id_is_strictly_increasing() -> None:
    registry = EntityRegistry()
    ids = []
    for _ in range(3):
        order = Order(id=registry.next_order_id())
        registry.orders[order.id] = order
        ids.append(order.id)

    del registry.orders[3]

    assert ids == [1, 2, 3]
    assert registry.next_order_id() == 4


def test_orders_by_section() -> None:
    registry = EntityRegistry()
    for order_id, status in enumerate(OrderStatus, start=1):
        registry.orders[order_id] = Order(id=order_id, status=status)

    assert [o.status for o in registry.orders_by_section("ORDERS")] == [OrderStatus.NEW]
    assert len(registry.orders_by_section("active")) == 3
    assert len(registry.orders_by_section("COMPLETED")) == 3
    assert registry.orders_by_section("UNKNOWN") == []


def test_find_available_driver_skips_busy_and_pending() -> None:
    registry = EntityRegistry()
    registry.drivers[1] = Driver(id=1, status=DriverStatus.BUSY)
    registry.drivers[2] = Driver(id=2, status=DriverStatus.PENDING)
    registry.drivers[3] = Driver(id=3, status=DriverStatus.ONLINE)

    assert registry.find_available_driver().id == 3


def test_latest_unpaid_qr_order() -> None:
    registry = EntityRegistry()
    registry.orders[1] = Order(id=1, customer_id=7, payment_method=PaymentMethod.QR)
    registry.orders[2] = Order(id=2, customer_id=7, payment_method=PaymentMethod.QR, paid=True)
    registry.orders[3] = Order(id=3, customer_id=8, payment_method=PaymentMethod.QR)

    assert registry.latest_unpaid_qr_order(7).id == 1
    assert registry.latest_unpaid_qr_order(9) is None


def test_active_session_for_driver_ignores_lapsed_sessions() -> None:
    registry = EntityRegistry()
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    lapsed = LiveSession(
        id="1:1:0", driver_id=1, order_id=1,
        started_at=now - timedelta(hours=1), expires_at=now - timedelta(minutes=1),
    )
    live = LiveSession(
        id="1:2:0", driver_id=1, order_id=2,
        started_at=now, expires_at=now + timedelta(minutes=30),
    )
    registry.sessions = {lapsed.id: lapsed, live.id: live}

    assert registry.active_session_for_driver(1, now) is live
    assert registry.active_session_for_driver(2, now) is None


def test_find_user_by_username() -> None:
    registry = EntityRegistry()
    registry.touch_customer(7, "Chan", "chan")
    registry.drivers[5] = Driver(id=5, username="dara")

    assert registry.find_user_by_username("@chan") == 7
    assert registry.find_user_by_username("dara") == 5
    assert registry.find_user_by_username("@nobody") is None


def test_stats_counts() -> None:
    registry = EntityRegistry()
    registry.orders[1] = Order(id=1, status=OrderStatus.PICKEDUP)
    registry.orders[2] = Order(id=2, status=OrderStatus.COMPLETED)
    registry.drivers[5] = Driver(id=5)

    assert registry.stats() == {
        "total_orders": 2,
        "active": 1,
        "completed": 1,
        "drivers_pending": 1,
    }
