"""End-to-end delivery flow driven through inbound events."""

from decimal import Decimal

import pytest

from conftest import ADMIN_ID, CUSTOMER_ID, DESTINATION, DRIVER_ID, make_event
from dispatch.api.gateway import RecordingGateway
from dispatch.context import DispatchContext
from dispatch.engine.scheduler import ManualClock
from dispatch.models.driver import Driver, DriverStatus, GeoPoint
from dispatch.models.events import ForwardInfo
from dispatch.models.order import OrderStatus, PaymentMethod
from dispatch.models.session import SessionState
from dispatch.state.store import LoadSource


@pytest.mark.asyncio
async def test_forwarded_order_is_delivered_and_rated(
    ctx: DispatchContext,
    gateway: RecordingGateway,
) -> None:
    ctx.registry.drivers[DRIVER_ID] = Driver(id=DRIVER_ID, name="Dara", status=DriverStatus.OFFLINE)

    # Operator forwards the customer's message
    result = await ctx.handle(make_event(
        ADMIN_ID,
        text="2x Fried rice",
        location=DESTINATION,
        forward=ForwardInfo(user_id=CUSTOMER_ID, name="Chan"),
    ))
    order_id = result.order_id
    order = ctx.registry.orders[order_id]
    assert order.status == OrderStatus.NEW
    assert order.destination == DESTINATION

    # Total and cash
    await ctx.handle(make_event(ADMIN_ID, action=f"settotal:{order_id}"))
    await ctx.handle(make_event(ADMIN_ID, text="$12.50"))
    await ctx.handle(make_event(ADMIN_ID, action=f"setpay:CASH:{order_id}"))
    await ctx.handle(make_event(ADMIN_ID, text="$20"))
    assert order.total_amount == Decimal("12.50")
    assert order.payment_method == PaymentMethod.CASH
    assert order.change_cash == Decimal("7.50")

    # Driver comes online and gets the order
    assert (await ctx.handle(make_event(DRIVER_ID, text="/connect"))).ok
    assert (await ctx.handle(make_event(ADMIN_ID, action=f"go:{order_id}"))).ok
    assert order.driver_id == DRIVER_ID

    await ctx.handle(make_event(DRIVER_ID, action=f"driver_pickup:{order_id}"))
    await ctx.handle(make_event(DRIVER_ID, action=f"driver_start_live:{order_id}"))
    assert order.status == OrderStatus.PICKEDUP

    # Approaching the destination
    await ctx.handle(make_event(DRIVER_ID, location=GeoPoint(lat=11.5504, lon=104.9204)))
    assert order.status == OrderStatus.PICKEDUP
    await ctx.scheduler.advance(15)
    await ctx.handle(make_event(DRIVER_ID, location=GeoPoint(lat=11.5501, lon=104.9201)))
    assert order.status == OrderStatus.ARRIVED
    assert len(gateway.locations_to(CUSTOMER_ID)) == 3

    assert (await ctx.handle(make_event(DRIVER_ID, text=f"/complete {order_id}"))).ok
    assert (await ctx.handle(make_event(CUSTOMER_ID, action=f"fb:5:{order_id}"))).ok
    assert order.feedback == 5
    assert "Chan gave you 5⭐" in gateway.texts_to(DRIVER_ID)

    await ctx.store.flush()

    # A fresh process sees the same state
    restarted = DispatchContext(
        settings=ctx.settings,
        gateway=RecordingGateway(),
        clock=ManualClock(ctx.clock.now()),
    )
    assert await restarted.startup(run_scheduler=False) == LoadSource.PRIMARY

    stored = restarted.registry.orders[order_id]
    assert stored.status == OrderStatus.COMPLETED
    assert stored.feedback == 5
    assert stored.total_amount == Decimal("12.50")
    assert stored.change_cash == Decimal("7.50")
    assert restarted.registry.drivers[DRIVER_ID].status == DriverStatus.ONLINE
    assert restarted.sessions.armed_sessions() == []
    assert all(s.state != SessionState.ARMED for s in restarted.registry.sessions.values())
    await restarted.shutdown()


@pytest.mark.asyncio
async def test_forward_with_single_online_driver_assigns_immediately(
    ctx: DispatchContext,
    online_driver: Driver,
) -> None:
    result = await ctx.handle(make_event(
        ADMIN_ID,
        text="1x Iced coffee",
        forward=ForwardInfo(user_id=CUSTOMER_ID, name="Chan"),
    ))

    order = ctx.registry.orders[result.order_id]
    assert order.status == OrderStatus.ASSIGNED
    assert order.driver_id == DRIVER_ID


@pytest.mark.asyncio
async def test_forward_without_sender_asks_for_customer(ctx: DispatchContext) -> None:
    await ctx.handle(make_event(ADMIN_ID, text="Noodles", forward=ForwardInfo(name="Hidden")))

    [order] = ctx.registry.orders.values()
    assert order.customer_id is None
    assert ADMIN_ID in ctx.registry.pending_edits

    result = await ctx.handle(make_event(ADMIN_ID, text=f"/setcustomer {CUSTOMER_ID}"))

    assert result.ok
    assert order.customer_id == CUSTOMER_ID
    assert ADMIN_ID not in ctx.registry.pending_edits


@pytest.mark.asyncio
async def test_customer_messages_fill_new_order(ctx: DispatchContext, new_order) -> None:
    await ctx.handle(make_event(CUSTOMER_ID, text="1x Spring rolls"))
    await ctx.handle(make_event(CUSTOMER_ID, location=GeoPoint(lat=11.57, lon=104.91)))

    assert new_order.items.endswith("1x Spring rolls")
    assert new_order.destination == GeoPoint(lat=11.57, lon=104.91)
