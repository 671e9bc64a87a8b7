"""Tests for the HTTP API."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import ADMIN_ID, DRIVER_ID
from dispatch.context import DispatchContext, get_context
from dispatch.main import app
from dispatch.models.order import Order


@pytest_asyncio.fixture
async def client(ctx: DispatchContext) -> AsyncGenerator[AsyncClient, None]:
    async def override() -> DispatchContext:
        return ctx

    app.dependency_overrides[get_context] = override
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "courier-dispatch"}


@pytest.mark.asyncio
async def test_post_action_event(client: AsyncClient, online_driver, new_order: Order) -> None:
    response = await client.post(
        "/api/v1/events",
        json={"sender_id": ADMIN_ID, "chat_id": ADMIN_ID, "action": f"go:{new_order.id}"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["handled"]
    assert body["outcome"] == "ok"
    assert body["order_id"] == new_order.id
    assert new_order.driver_id == DRIVER_ID


@pytest.mark.asyncio
async def test_post_unhandled_event(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/events",
        json={"sender_id": 1, "chat_id": 1, "action": "nonsense:1"},
    )

    assert response.json() == {
        "handled": False, "outcome": None, "message": "", "order_id": None, "data": {},
    }


@pytest.mark.asyncio
async def test_post_invalid_event_body(client: AsyncClient) -> None:
    response = await client.post("/api/v1/events", json={"chat_id": 1})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_order(client: AsyncClient, new_order: Order) -> None:
    found = await client.get(f"/api/v1/orders/{new_order.id}")
    missing = await client.get("/api/v1/orders/999")

    assert found.status_code == 200
    assert found.json()["customer_name"] == "Chan"
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_list_orders_by_section(client: AsyncClient, assigned_order: Order) -> None:
    active = await client.get("/api/v1/orders", params={"section": "active"})
    queued = await client.get("/api/v1/orders")
    unknown = await client.get("/api/v1/orders", params={"section": "later"})

    assert [o["id"] for o in active.json()["orders"]] == [assigned_order.id]
    assert queued.json() == {"section": "ORDERS", "orders": []}
    assert unknown.status_code == 400


@pytest.mark.asyncio
async def test_flush_reports_completed_writes(client: AsyncClient, new_order: Order) -> None:
    response = await client.post("/api/v1/flush")

    assert response.status_code == 200
    assert response.json()["writes_completed"] >= 1
