"""Pytest configuration and fixtures."""

import os
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

os.environ.setdefault("BOT_TOKEN", "test-token")

from dispatch.api.gateway import RecordingGateway
from dispatch.config import Settings
from dispatch.context import DispatchContext
from dispatch.engine.scheduler import ManualClock
from dispatch.models.driver import Driver, DriverStatus, GeoPoint
from dispatch.models.events import InboundEvent
from dispatch.models.order import Order, OrderLocation
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore

ADMIN_ID = 900
DRIVER_ID = 501
CUSTOMER_ID = 701

DESTINATION = GeoPoint(lat=11.55, lon=104.92)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary data directory."""
    return Settings(
        bot_token="test-token",
        admin_id=ADMIN_ID,
        data_file=tmp_path / "data.json",
        lock_dir=tmp_path / "locks",
        log_format="text",
    )


@pytest.fixture
def clock() -> ManualClock:
    """Clock that only moves when a test advances it."""
    return ManualClock()


@pytest.fixture
def gateway() -> RecordingGateway:
    """Gateway that keeps outbound messages in memory."""
    return RecordingGateway()


@pytest.fixture
def registry() -> EntityRegistry:
    return EntityRegistry()


@pytest.fixture
def store(registry: EntityRegistry, tmp_path: Path) -> PersistenceStore:
    return PersistenceStore(registry, tmp_path / "data.json")


@pytest_asyncio.fixture
async def ctx(
    settings: Settings,
    gateway: RecordingGateway,
    clock: ManualClock,
) -> AsyncGenerator[DispatchContext, None]:
    """A started dispatch context driven by the manual clock."""
    context = DispatchContext(settings=settings, gateway=gateway, clock=clock)
    await context.startup(run_scheduler=False)
    yield context
    await context.shutdown()


# Sample data fixtures


@pytest.fixture
def online_driver(ctx: DispatchContext) -> Driver:
    """An approved driver who is online."""
    driver = Driver(id=DRIVER_ID, name="Dara", username="dara", status=DriverStatus.ONLINE)
    ctx.registry.drivers[driver.id] = driver
    return driver


@pytest.fixture
def new_order(ctx: DispatchContext) -> Order:
    """A new order with a customer and a destination."""
    return ctx.engine.create(
        customer_id=CUSTOMER_ID,
        customer_name="Chan",
        location=OrderLocation(point=DESTINATION),
        items="2x Fried rice",
    )


@pytest_asyncio.fixture
async def assigned_order(
    ctx: DispatchContext,
    online_driver: Driver,
    new_order: Order,
) -> Order:
    """The sample order assigned to the online driver."""
    result = await ctx.engine.assign(new_order.id)
    assert result.ok
    return new_order


@pytest_asyncio.fixture
async def picked_up_order(ctx: DispatchContext, assigned_order: Order) -> Order:
    """The sample order picked up by its driver."""
    result = await ctx.engine.pickup(assigned_order.id, driver_id=DRIVER_ID)
    assert result.ok
    return assigned_order


def make_event(sender_id: int, **fields: object) -> InboundEvent:
    """Build an inbound event in the sender's private chat."""
    return InboundEvent(sender_id=sender_id, chat_id=sender_id, **fields)
