"""Free-form inbound messages: text, location, contact and media."""

from typing import TYPE_CHECKING

from dispatch.api.actions import order_edit_buttons
from dispatch.engine.geo import looks_like_url, parse_coordinates
from dispatch.engine.results import ActionResult, Outcome
from dispatch.models.driver import DriverStatus
from dispatch.models.events import InboundEvent
from dispatch.models.order import EditField, OrderLocation
from dispatch.utils.logging import DispatchLogger
from dispatch.utils.templates import MessageTemplates as T

if TYPE_CHECKING:
    from dispatch.context import DispatchContext

# Reply-keyboard texts a driver can send
DRIVER_KEYWORDS = {
    "my orders": "my_orders",
    "📦my orders": "my_orders",
    "stats": "stats",
    "📊stats": "stats",
}


class MessageRouter:
    """Routes a message to the operator, driver or customer flow, in that order."""

    def __init__(self, ctx: "DispatchContext"):
        self.ctx = ctx
        self.logger = DispatchLogger("messages")

    async def handle(self, event: InboundEvent) -> ActionResult | None:
        try:
            if self.ctx.is_operator(event.sender_id):
                result = await self._operator(event)
            else:
                result = await self._driver(event)
                if result is None:
                    result = await self._customer(event)
        except Exception as e:
            self.logger.logger.error(
                "event_failed",
                handler="message",
                sender_id=event.sender_id,
                error=str(e),
            )
            return None

        if result is None:
            self.logger.log_rejected("message", "no handler matched", sender_id=event.sender_id)
        elif result.message:
            await self.ctx.notifier.text(event.chat_id, result.message)
        return result

    # Operator

    async def _operator(self, event: InboundEvent) -> ActionResult | None:
        sender = event.sender_id

        result = self.ctx.shifts.consume(sender, event)
        if result is not None:
            return result

        result = self.ctx.payments.consume_upload(sender, event)
        if result is not None:
            return result

        if event.forward is not None:
            return await self._forwarded_order(event)

        return self.ctx.edits.consume(sender, event)

    async def _forwarded_order(self, event: InboundEvent) -> ActionResult:
        """Turn a message forwarded by the operator into a new order."""
        forward = event.forward
        if forward is None:
            return ActionResult.rejected(Outcome.INVALID, "Not a forwarded message")
        body = event.caption or event.text or ""

        location = None
        if event.location is not None:
            location = OrderLocation(point=event.location)
        elif looks_like_url(body) or parse_coordinates(body) is not None:
            location = OrderLocation(text=body, point=parse_coordinates(body))

        order = self.ctx.engine.create(
            customer_id=forward.user_id,
            customer_name=forward.name or "(unknown)",
            location=location,
            items=body or "(forwarded message)",
        )
        await self.ctx.notifier.text(
            event.chat_id,
            T.FORWARDED_ORDER.format(label=order.label, customer=order.customer_name, items=order.items),
            order_edit_buttons(order.id),
        )

        if order.customer_id is None:
            return self.ctx.engine.begin_edit(event.sender_id, order.id, EditField.ASSIGN_CUSTOMER)

        if len(self.ctx.registry.online_drivers()) == 1:
            return await self.ctx.engine.assign(order.id)
        return ActionResult.success(order_id=order.id)

    # Driver

    async def _driver(self, event: InboundEvent) -> ActionResult | None:
        driver = self.ctx.registry.get_driver(event.sender_id)
        if driver is None or driver.status == DriverStatus.PENDING:
            return None

        keyword = (event.text or "").strip().lower()
        if keyword in DRIVER_KEYWORDS:
            return getattr(self.ctx.roster, DRIVER_KEYWORDS[keyword])(driver.id)

        # Drivers never fall through to the customer flow
        if event.location is None or not self.ctx.registry.active_orders_for_driver(driver.id):
            return ActionResult.success()
        result = await self.ctx.sessions.update_location(
            driver.id, event.location.lat, event.location.lon
        )
        # The hint was already sent to the driver
        return result.model_copy(update={"message": ""})

    # Customer

    async def _customer(self, event: InboundEvent) -> ActionResult | None:
        registry = self.ctx.registry
        customer = registry.touch_customer(event.sender_id, event.sender_name, event.username)

        if event.chat_type == "private" and (event.media is not None or event.text):
            result = await self.ctx.payments.match_proof(customer.id, event)
            if result is not None:
                return result

        order = registry.latest_new_order_for_customer(customer.id)
        if order is None:
            return None

        if event.location is not None:
            order.location = OrderLocation(point=event.location)
            self.ctx.store.save()
            return ActionResult.success(T.LOCATION_SAVED, order_id=order.id)

        if event.text and event.chat_type == "private":
            order.append_items(event.text.strip())
            self.ctx.store.save()
            return ActionResult.success(T.ITEMS_ADDED, order_id=order.id)

        return None
