"""HTTP routes for inbound events and order inspection."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from dispatch.context import DispatchContext, get_context
from dispatch.models.events import InboundEvent
from dispatch.models.order import Order
from dispatch.state.registry import SECTION_STATUSES
from dispatch.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


# Request/Response Models


class EventResponse(BaseModel):
    """Outcome of an inbound event."""

    handled: bool
    outcome: str | None = None
    message: str = ""
    order_id: int | None = None
    data: dict[str, Any] = {}


class OrderListResponse(BaseModel):
    """Orders of one admin section."""

    section: str
    orders: list[Order]


class FlushResponse(BaseModel):
    """Persistence status after a flush."""

    writes_completed: int


# Routes


@router.post("/events", response_model=EventResponse)
async def post_event(
    event: InboundEvent,
    ctx: DispatchContext = Depends(get_context),
) -> EventResponse:
    """
    Process one inbound event.

    Accepts callback actions, slash commands and free-form messages.
    """
    result = await ctx.handle(event)
    if result is None:
        return EventResponse(handled=False)

    return EventResponse(
        handled=True,
        outcome=result.outcome.value,
        message=result.message,
        order_id=result.order_id,
        data=result.data,
    )


@router.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: int,
    ctx: DispatchContext = Depends(get_context),
) -> Order:
    """Get one order by id."""
    order = ctx.registry.get_order(order_id)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found",
        )
    return order


@router.get("/orders", response_model=OrderListResponse)
async def list_orders(
    section: str = Query(default="ORDERS"),
    ctx: DispatchContext = Depends(get_context),
) -> OrderListResponse:
    """List the orders of a section: ORDERS, ACTIVE or COMPLETED."""
    section = section.upper()
    if section not in SECTION_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown section {section}",
        )
    return OrderListResponse(section=section, orders=ctx.registry.orders_by_section(section))


@router.post("/flush", response_model=FlushResponse)
async def flush(ctx: DispatchContext = Depends(get_context)) -> FlushResponse:
    """Wait for every queued write to reach disk."""
    await ctx.store.flush()
    logger.info("store_flushed", writes=ctx.store.writes_completed)
    return FlushResponse(writes_completed=ctx.store.writes_completed)
