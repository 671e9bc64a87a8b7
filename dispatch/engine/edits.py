"""Apply an operator's next message to the order field they opened."""

import re
from decimal import Decimal, InvalidOperation

from dispatch.engine.geo import parse_coordinates
from dispatch.engine.results import ActionResult, Outcome
from dispatch.models.events import InboundEvent
from dispatch.models.order import EditField, MediaAttachment, Order, OrderLocation
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore
from dispatch.utils.formatting import format_amount
from dispatch.utils.logging import get_logger
from dispatch.utils.templates import MessageTemplates as T

logger = get_logger(__name__)

_AMOUNT = re.compile(r"^\s*\$?\s*(\d+(?:[.,]\d+)?)\s*$")


def parse_amount(text: str | None, require_dollar: bool = False) -> Decimal | None:
    """Read ``$12.50``-style amounts; ``None`` when not a number."""
    if not text:
        return None
    text = text.strip()
    if require_dollar and not text.startswith("$"):
        return None
    match = _AMOUNT.match(text)
    if not match:
        return None
    try:
        return Decimal(match.group(1).replace(",", "."))
    except InvalidOperation:
        return None


class EditRouter:
    """Consumes pending edits created by ``OrderLifecycleEngine.begin_edit``.

    Resolution order is fixed: an explicit field wins, then a ``$`` amount
    (sets the total), then a location or free text (sets the location).
    """

    def __init__(self, registry: EntityRegistry, store: PersistenceStore) -> None:
        self.registry = registry
        self.store = store

    def has_pending(self, operator_id: int) -> bool:
        return operator_id in self.registry.pending_edits

    def consume(self, operator_id: int, event: InboundEvent) -> ActionResult | None:
        """Apply ``event`` to the pending edit, if the operator has one.

        Returns ``None`` when nothing is pending so the caller can route the
        event elsewhere.
        """
        pending = self.registry.pending_edits.get(operator_id)
        if pending is None:
            return None

        order = self.registry.get_order(pending.order_id)
        if order is None:
            del self.registry.pending_edits[operator_id]
            return ActionResult.rejected(Outcome.NOT_FOUND, T.ORDER_NOT_FOUND, pending.order_id)

        if pending.field is not None:
            result = self._apply_field(order, pending.field, event)
        else:
            result = self._apply_unmarked(order, event)

        if result.ok:
            self.registry.pending_edits.pop(operator_id, None)
            self.store.save()
            logger.info(
                "order_field_edited",
                order_id=order.id,
                field=pending.field.value if pending.field else None,
            )
        return result

    # Field handlers

    def _apply_field(self, order: Order, field: EditField, event: InboundEvent) -> ActionResult:
        text = (event.text or "").strip()

        if field == EditField.TOTAL_AMOUNT:
            return self._set_total(order, text)

        if field == EditField.GIVEN_CASH:
            amount = parse_amount(text)
            if amount is None:
                return self._expect_amount(order)
            order.set_given_cash(amount)
            return ActionResult.success(
                T.GIVEN_CASH_SET.format(
                    given=format_amount(order.given_cash),
                    change=format_amount(order.change_cash) or "n/a",
                ),
                order_id=order.id,
            )

        if field == EditField.CUSTOMER_NAME:
            if not text:
                return self._expect_text(order, field)
            order.customer_name = text
            return ActionResult.success(T.CUSTOMER_UPDATED.format(label=order.label), order.id)

        if field == EditField.ITEMS:
            if not text:
                return self._expect_text(order, field)
            order.items = text
            return ActionResult.success(T.ITEMS_UPDATED.format(label=order.label), order.id)

        if field == EditField.MEDIA:
            return self._attach_media(order, event)

        if field == EditField.LOCATION:
            if event.location is None and not text:
                return self._expect_text(order, field)
            return self._set_location(order, event)

        if field == EditField.ASSIGN_CUSTOMER:
            return self._assign_customer(order, event)

        return ActionResult.rejected(Outcome.INVALID, f"Unknown field {field}", order.id)

    def _apply_unmarked(self, order: Order, event: InboundEvent) -> ActionResult:
        text = (event.text or "").strip()
        if parse_amount(text, require_dollar=True) is not None:
            return self._set_total(order, text)
        if event.media is not None:
            return self._attach_media(order, event)
        if event.location is not None or text:
            return self._set_location(order, event)
        return ActionResult.rejected(Outcome.INVALID, T.UNSUPPORTED_PAYLOAD, order.id)

    def _set_total(self, order: Order, text: str) -> ActionResult:
        amount = parse_amount(text)
        if amount is None:
            return self._expect_amount(order)
        order.total_amount = amount
        if order.given_cash is not None:
            order.set_given_cash(order.given_cash)
        return ActionResult.success(T.TOTAL_UPDATED.format(total=format_amount(amount)), order.id)

    def _set_location(self, order: Order, event: InboundEvent) -> ActionResult:
        if event.location is not None:
            order.location = OrderLocation(point=event.location)
        else:
            text = (event.text or "").strip()
            order.location = OrderLocation(text=text, point=parse_coordinates(text))
        return ActionResult.success(T.LOCATION_UPDATED.format(label=order.label), order.id)

    def _attach_media(self, order: Order, event: InboundEvent) -> ActionResult:
        if event.media is not None:
            order.media = MediaAttachment(
                type=event.media.type,
                file_id=event.media.file_id,
                name=event.media.name,
                text=event.caption,
            )
        elif event.text:
            order.media = MediaAttachment(type="text", text=event.text.strip())
        else:
            return ActionResult.rejected(Outcome.INVALID, T.UNSUPPORTED_PAYLOAD, order.id)
        return ActionResult.success(
            T.MEDIA_ATTACHED.format(kind=order.media.type.capitalize(), label=order.label),
            order.id,
        )

    def _assign_customer(self, order: Order, event: InboundEvent) -> ActionResult:
        customer_id = None
        name = ""
        if event.contact is not None and event.contact.user_id is not None:
            customer_id = event.contact.user_id
            name = event.contact.full_name
        elif event.forward is not None and event.forward.user_id is not None:
            customer_id = event.forward.user_id
            name = event.forward.name
        elif event.text:
            text = event.text.strip()
            if text.isdigit():
                customer_id = int(text)
            elif text.startswith("@"):
                customer_id = self.registry.find_user_by_username(text)

        if customer_id is None:
            return self._expect_text(order, EditField.ASSIGN_CUSTOMER)

        customer = self.registry.touch_customer(customer_id, name)
        order.customer_id = customer_id
        if name or customer.name:
            order.customer_name = name or customer.name
        return ActionResult.success(T.CUSTOMER_UPDATED.format(label=order.label), order.id)

    # Hints; the pending edit stays in place

    def _expect_amount(self, order: Order) -> ActionResult:
        return ActionResult.rejected(Outcome.INVALID, T.AMOUNT_EXPECTED, order.id)

    def _expect_text(self, order: Order, field: EditField) -> ActionResult:
        return ActionResult.rejected(
            Outcome.INVALID, T.EDIT_PROMPTS[field.value].format(label=order.label), order.id
        )
