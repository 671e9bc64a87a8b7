"""Seed drivers, a customer and a sample order into the durable document."""

import asyncio
from decimal import Decimal

from dispatch.config import get_settings
from dispatch.models.driver import Driver, DriverStatus, GeoPoint
from dispatch.models.order import Order, OrderLocation
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore


async def seed_drivers(registry: EntityRegistry) -> None:
    """Seed approved drivers."""
    print("Seeding drivers...")

    drivers = [
        Driver(id=1001, name="Dara", username="dara_rides", status=DriverStatus.OFFLINE),
        Driver(id=1002, name="Sokha", username="sokha_go", status=DriverStatus.OFFLINE),
        Driver(id=1003, name="Vanna", username="vanna", status=DriverStatus.PENDING),
    ]
    for driver in drivers:
        registry.drivers[driver.id] = driver

    print(f"✓ Seeded {len(drivers)} drivers")


async def seed_orders(registry: EntityRegistry) -> None:
    """Seed a sample customer with one open order."""
    print("Seeding orders...")

    customer = registry.touch_customer(2001, "Test Customer", "test_customer")
    order = Order(
        id=registry.next_order_id(),
        customer_id=customer.id,
        customer_name=customer.name,
        location=OrderLocation(point=GeoPoint(lat=11.55, lon=104.92)),
        total_amount=Decimal("12.50"),
        items="2x Fried rice\n1x Iced coffee",
    )
    registry.orders[order.id] = order

    print(f"✓ Seeded order {order.label}")


async def main() -> None:
    """Run all seed functions."""
    print("\n🌱 Seeding dispatch data...\n")

    settings = get_settings()
    registry = EntityRegistry(archive_days=settings.archive_days)
    store = PersistenceStore(registry, settings.data_file)
    store.load()

    await seed_drivers(registry)
    await seed_orders(registry)

    store.save()
    await store.flush()

    print(f"\n✅ Seed data written to {settings.data_file}\n")


if __name__ == "__main__":
    asyncio.run(main())
