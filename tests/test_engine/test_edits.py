"""Tests for operator field edits."""

from decimal import Decimal

import pytest

from conftest import ADMIN_ID, make_event
from dispatch.context import DispatchContext
from dispatch.engine.edits import parse_amount
from dispatch.engine.results import Outcome
from dispatch.models.driver import GeoPoint
from dispatch.models.events import Contact, InboundMedia
from dispatch.models.order import EditField, Order


def consume(ctx: DispatchContext, **fields: object):
    return ctx.edits.consume(ADMIN_ID, make_event(ADMIN_ID, **fields))


@pytest.mark.parametrize(
    ("text", "expected"),
    [("$12.50", Decimal("12.50")), ("12", Decimal("12")), ("$ 7,5", Decimal("7.5"))],
)
def test_parse_amount(text: str, expected: Decimal) -> None:
    assert parse_amount(text) == expected


def test_parse_amount_rejects_non_numbers() -> None:
    assert parse_amount("twelve") is None
    assert parse_amount("$12abc") is None
    assert parse_amount("12", require_dollar=True) is None


def test_no_pending_edit_returns_none(ctx: DispatchContext) -> None:
    assert consume(ctx, text="hello") is None


def test_given_cash_computes_change(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.TOTAL_AMOUNT)
    assert consume(ctx, text="$12.50").ok

    ctx.engine.set_payment_method(new_order.id, "CASH", operator_id=ADMIN_ID)
    result = consume(ctx, text="$20")

    assert result.ok
    assert new_order.total_amount == Decimal("12.50")
    assert new_order.given_cash == Decimal("20")
    assert new_order.change_cash == Decimal("7.50")
    assert result.message == "Given cash set: 20.00 - change: 7.50"
    assert ADMIN_ID not in ctx.registry.pending_edits


def test_given_cash_without_total_leaves_change_unset(
    ctx: DispatchContext,
    new_order: Order,
) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.GIVEN_CASH)

    assert consume(ctx, text="$20").ok
    assert new_order.given_cash == Decimal("20")
    assert new_order.change_cash is None


def test_total_change_recomputes_change(ctx: DispatchContext, new_order: Order) -> None:
    new_order.total_amount = Decimal("10")
    new_order.set_given_cash(Decimal("20"))

    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.TOTAL_AMOUNT)
    consume(ctx, text="$15")

    assert new_order.change_cash == Decimal("5")


def test_non_numeric_amount_keeps_pending_edit(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.GIVEN_CASH)

    result = consume(ctx, text="twenty")

    assert result.outcome == Outcome.INVALID
    assert result.message == "Send the amount as $<number>, e.g. $12.50"
    assert ctx.registry.pending_edits[ADMIN_ID].field == EditField.GIVEN_CASH
    assert new_order.given_cash is None


def test_explicit_field_wins_over_amount(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.ITEMS)

    assert consume(ctx, text="$5").ok
    assert new_order.items == "$5"
    assert new_order.total_amount is None


def test_unmarked_amount_sets_total(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id)

    assert consume(ctx, text="$9.90").ok
    assert new_order.total_amount == Decimal("9.90")


def test_unmarked_text_sets_location(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id)

    assert consume(ctx, text="Street 51, house 12").ok
    assert new_order.location.text == "Street 51, house 12"
    assert new_order.location.point is None


def test_unmarked_coordinates_are_parsed(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id)

    consume(ctx, text="location:11.56,104.93")

    assert new_order.destination == GeoPoint(lat=11.56, lon=104.93)


def test_location_event_sets_point(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.LOCATION)

    assert consume(ctx, location=GeoPoint(lat=11.57, lon=104.91)).ok
    assert new_order.destination == GeoPoint(lat=11.57, lon=104.91)


def test_media_is_attached(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.MEDIA)

    result = consume(ctx, media=InboundMedia(type="photo", file_id="abc"), caption="receipt")

    assert result.ok
    assert new_order.media.file_id == "abc"
    assert new_order.media.text == "receipt"


def test_customer_name(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.CUSTOMER_NAME)

    assert consume(ctx, text="Sophea").ok
    assert new_order.customer_name == "Sophea"


def test_assign_customer_from_contact(ctx: DispatchContext) -> None:
    order = ctx.engine.create()
    ctx.engine.begin_edit(ADMIN_ID, order.id, EditField.ASSIGN_CUSTOMER)

    result = consume(ctx, contact=Contact(user_id=808, first_name="Bopha", last_name="K"))

    assert result.ok
    assert order.customer_id == 808
    assert order.customer_name == "Bopha K"
    assert 808 in ctx.registry.customers


def test_assign_customer_unknown_username_keeps_edit(ctx: DispatchContext) -> None:
    order = ctx.engine.create()
    ctx.engine.begin_edit(ADMIN_ID, order.id, EditField.ASSIGN_CUSTOMER)

    result = consume(ctx, text="@nobody")

    assert not result.ok
    assert order.customer_id is None
    assert ADMIN_ID in ctx.registry.pending_edits


def test_deleted_order_drops_pending_edit(ctx: DispatchContext, new_order: Order) -> None:
    ctx.engine.begin_edit(ADMIN_ID, new_order.id, EditField.ITEMS)
    del ctx.registry.orders[new_order.id]

    assert consume(ctx, text="anything").outcome == Outcome.NOT_FOUND
    assert ADMIN_ID not in ctx.registry.pending_edits
