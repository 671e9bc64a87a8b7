"""Tests for durable snapshot persistence."""

import json
import os
from decimal import Decimal
from pathlib import Path

import pytest

from dispatch.models.order import Order
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import LoadSource, PersistenceStore


def add_order(registry: EntityRegistry, **fields: object) -> Order:
    order = Order(id=registry.next_order_id(), **fields)
    registry.orders[order.id] = order
    return order


def test_load_missing_file_starts_empty(store: PersistenceStore) -> None:
    """A missing document is an empty state, not an error."""
    assert store.load() == LoadSource.EMPTY
    assert store.registry.orders == {}


def test_save_outside_event_loop_writes_immediately(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    add_order(registry, customer_name="Chan")

    assert store.save() is None

    document = json.loads(store.path.read_text())
    assert [o["id"] for o in document["orders"]] == [1]
    assert document["orderCounter"] == 2


@pytest.mark.asyncio
async def test_writes_are_serialized_and_keep_backup(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    """Each write moves the previous good document to the backup."""
    add_order(registry)
    store.save()
    add_order(registry)
    store.save()
    add_order(registry)
    store.save()
    await store.flush()

    primary = json.loads(store.path.read_text())
    backup = json.loads(store.backup_path.read_text())

    assert len(primary["orders"]) == 3
    assert len(backup["orders"]) == 2
    assert not store.tmp_path.exists()
    assert store.writes_completed == 3


@pytest.mark.asyncio
async def test_failed_replace_leaves_primary_intact(
    registry: EntityRegistry,
    store: PersistenceStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    add_order(registry)
    store.save()
    await store.flush()
    before = store.path.read_text()

    def failing_replace(src: object, dst: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)
    add_order(registry)
    store.save()
    await store.flush()

    assert store.path.read_text() == before
    assert not store.tmp_path.exists()
    assert store.writes_completed == 1


@pytest.mark.asyncio
async def test_round_trip_keeps_money_and_counters(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    order = add_order(registry, total_amount=Decimal("12.50"))
    order.set_given_cash(Decimal("20"))
    store.save()
    await store.flush()

    fresh = EntityRegistry()
    assert PersistenceStore(fresh, store.path).load() == LoadSource.PRIMARY

    loaded = fresh.orders[order.id]
    assert loaded.total_amount == Decimal("12.50")
    assert loaded.change_cash == Decimal("7.50")
    assert fresh.order_counter == registry.order_counter


def test_counter_never_reuses_hand_edited_ids(tmp_path: Path) -> None:
    """A counter edited below the highest id still yields a fresh id."""
    path = tmp_path / "data.json"
    path.write_text(json.dumps({"orders": [{"id": 5}, {"id": 3}], "orderCounter": 2}))

    registry = EntityRegistry()
    PersistenceStore(registry, path).load()

    first = registry.next_order_id()
    second = registry.next_order_id()
    assert first == 6
    assert second == 7


def test_corrupt_primary_falls_back_to_backup(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    add_order(registry, customer_name="kept")
    store.save()
    store.save()
    store.path.write_text("{not json")

    fresh = EntityRegistry()
    fallback = PersistenceStore(fresh, store.path)

    assert fallback.load() == LoadSource.BACKUP
    assert fresh.orders[1].customer_name == "kept"


@pytest.mark.asyncio
async def test_backup_not_overwritten_by_corrupt_primary(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    add_order(registry, customer_name="kept")
    store.save()
    store.save()
    await store.flush()
    store.path.write_text("{not json")

    fresh = EntityRegistry()
    fallback = PersistenceStore(fresh, store.path)
    fallback.load()
    fallback.save()
    await fallback.flush()

    backup = json.loads(store.backup_path.read_text())
    assert backup["orders"][0]["customer_name"] == "kept"
    assert json.loads(store.path.read_text())["orders"][0]["customer_name"] == "kept"


def test_unreadable_primary_and_backup_reset_state(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    store.path.write_text("{not json")
    store.backup_path.write_text("also broken")
    registry.orders[9] = Order(id=9)

    assert store.load() == LoadSource.RESET
    assert registry.orders == {}

    dumps = list(store.path.parent.glob("data.json.corrupt-*.json"))
    assert len(dumps) == 1
    assert dumps[0].read_text() == "{not json"


def test_invalid_document_shape_is_treated_as_corrupt(
    registry: EntityRegistry,
    store: PersistenceStore,
) -> None:
    store.path.write_text(json.dumps({"orders": [{"id": "not a number"}]}))

    assert store.load() == LoadSource.RESET
