"""Order lifecycle engine: legal transitions and their side effects."""

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from dispatch.api.gateway import Button, Notifier
from dispatch.engine.results import ActionResult, Outcome
from dispatch.engine.scheduler import Clock
from dispatch.models.driver import Driver, DriverStatus
from dispatch.models.order import (
    EditField,
    Order,
    OrderStatus,
    PaymentMethod,
    PendingEdit,
)
from dispatch.state.lock import AssignmentLock
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore
from dispatch.state.workflow import OrderTransitions
from dispatch.utils.formatting import format_order
from dispatch.utils.logging import DispatchLogger
from dispatch.utils.templates import MessageTemplates as T

if TYPE_CHECKING:
    from dispatch.engine.sessions import LiveSessionScheduler


def feedback_buttons(order_id: int) -> list[list[Button]]:
    return [[Button(label=str(n), action=f"fb:{n}:{order_id}") for n in range(1, 6)]]


def assignment_buttons(order_id: int) -> list[list[Button]]:
    return [[
        Button(label="🛍️ PICKUP", action=f"driver_pickup:{order_id}"),
        Button(label="🗺️ MAP", action=f"driver_route:{order_id}"),
    ]]


def active_order_buttons(order_id: int) -> list[list[Button]]:
    return [[
        Button(label="🏁 ARRIVED", action=f"driver_arrived:{order_id}"),
        Button(label="🗺️ START LIVE", action=f"driver_start_live:{order_id}"),
        Button(label="⏰ DELAY", action=f"driver_delay:{order_id}"),
    ]]


class OrderLifecycleEngine:
    """Enforces the order state machine.

    Every mutation is followed by a queued save. Invalid transitions and
    missing entities are reported through ``ActionResult`` and never raise.
    Notifications are sent after the state change and cannot undo it.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        store: PersistenceStore,
        notifier: Notifier,
        lock: AssignmentLock,
        clock: Clock,
        sessions: "LiveSessionScheduler | None" = None,
    ):
        self.registry = registry
        self.store = store
        self.notifier = notifier
        self.lock = lock
        self.clock = clock
        self.sessions = sessions
        self.logger = DispatchLogger("lifecycle")

    # Helpers

    def _not_found(self, action: str, order_id: int | None) -> ActionResult:
        self.logger.log_rejected(action, "order not found", order_id=order_id)
        return ActionResult.rejected(Outcome.NOT_FOUND, T.ORDER_NOT_FOUND, order_id=order_id)

    def _invalid(self, action: str, order: Order, reason: str | None = None) -> ActionResult:
        reason = reason or f"cannot {action} an order that is {order.status.value}"
        self.logger.log_rejected(action, reason, order_id=order.id, status=order.status.value)
        return ActionResult.rejected(Outcome.INVALID, reason, order_id=order.id)

    def _set_status(self, order: Order, status: OrderStatus, **log_fields: Any) -> None:
        previous = order.status
        order.status = status
        self.logger.log_transition(order.id, previous.value, status.value, **log_fields)

    def _release_driver(self, order: Order) -> None:
        """Put the order's driver back online unless other orders keep them busy."""
        driver = self.registry.get_driver(order.driver_id)
        if driver is None:
            return
        if driver.status not in (DriverStatus.ASSIGNED, DriverStatus.BUSY):
            return
        others = [o for o in self.registry.active_orders_for_driver(driver.id) if o.id != order.id]
        if not others:
            driver.status = DriverStatus.ONLINE

    async def _stop_session(self, order: Order, driver_id: int | None = None) -> None:
        driver_id = driver_id or order.driver_id
        if self.sessions is not None and driver_id is not None:
            await self.sessions.stop(driver_id, order.id, notify=False)

    # Creation

    def create(self, **fields: Any) -> Order:
        """Create a new order with the next counter value and persist it."""
        fields.pop("id", None)
        if fields.get("customer_id") is not None:
            self.registry.touch_customer(fields["customer_id"], fields.get("customer_name", ""))
        order = Order(
            id=self.registry.next_order_id(),
            created_at=self.clock.now(),
            **fields,
        )
        self.registry.orders[order.id] = order
        self.store.save()
        self.logger.logger.info(
            "order_created",
            order_id=order.id,
            customer_id=order.customer_id,
        )
        return order

    def set_order_counter(self, value: int, force: bool = False) -> ActionResult:
        """Move the counter, refusing values that could reuse an id."""
        max_id = self.registry.highest_order_id()
        if value < 1:
            return ActionResult.rejected(Outcome.INVALID, "Counter must be positive")
        if value <= max_id and not force:
            return ActionResult.rejected(
                Outcome.INVALID, T.COUNTER_REFUSED.format(value=value, max_id=max_id)
            )
        self.registry.order_counter = value
        self.store.save()
        return ActionResult.success(
            T.COUNTER_SET.format(value=value, suffix=" (forced)" if force else "")
        )

    # Transitions

    async def assign(self, order_id: int, driver_id: int | None = None) -> ActionResult:
        """Bind a driver to a new order.

        With no ``driver_id`` the first online driver is picked. Without an
        available driver the order stays queued as ``new``.
        """
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("assign", order_id)
        if order.status != OrderStatus.NEW:
            return self._invalid("assign", order)

        with self.lock.hold(order.id) as held:
            if held is None:
                self.logger.log_rejected("assign", "lock held elsewhere", order_id=order.id)
                return ActionResult.rejected(
                    Outcome.LOCKED, T.ASSIGN_BUSY.format(label=order.label), order_id=order.id
                )

            driver: Driver | None
            if driver_id is not None:
                driver = self.registry.get_driver(driver_id)
                if driver is not None and not driver.is_available:
                    driver = None
            else:
                driver = self.registry.find_available_driver()

            if driver is None:
                self.logger.log_rejected("assign", "no available driver", order_id=order.id)
                return ActionResult.rejected(
                    Outcome.NO_DRIVER, T.NO_DRIVER.format(label=order.label), order_id=order.id
                )

            self._set_status(order, OrderStatus.ASSIGNED, driver_id=driver.id)
            order.driver_id = driver.id
            order.driver_name = driver.display_name
            order.driver_status = DriverStatus.ASSIGNED
            order.driver_assigned = True
            driver.status = DriverStatus.ASSIGNED
            self.store.save()

        await self.notifier.text(
            driver.id,
            T.NEW_ASSIGNMENT.format(order=format_order(order)),
            assignment_buttons(order.id),
        )
        await self.notifier.admin(
            T.ASSIGNED_TO.format(label=order.label, driver=driver.display_name)
        )
        return ActionResult.success(order_id=order.id, driver_id=driver.id)

    async def pickup(self, order_id: int, driver_id: int | None = None) -> ActionResult:
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("pickup", order_id)
        if order.status != OrderStatus.ASSIGNED:
            return self._invalid("pickup", order)
        if driver_id is not None and order.driver_id not in (None, driver_id):
            return self._invalid("pickup", order, "order is assigned to another driver")

        if order.driver_id is None and driver_id is not None:
            driver = self.registry.get_driver(driver_id)
            order.driver_id = driver_id
            order.driver_name = driver.display_name if driver else str(driver_id)

        self._set_status(order, OrderStatus.PICKEDUP)
        order.driver_status = DriverStatus.BUSY
        order.driver_assigned = True
        driver = self.registry.get_driver(order.driver_id)
        if driver is not None:
            driver.status = DriverStatus.BUSY
        self.store.save()

        driver_name = order.driver_name or "your driver"
        await self.notifier.text(
            order.customer_id,
            T.PICKED_UP.format(label=order.label, driver=driver_name),
            [[Button(label="❔ETA", action=f"eta:{order.id}")]],
        )
        await self.notifier.text(
            order.driver_id,
            T.ORDER_ACTIVE.format(label=order.label),
            active_order_buttons(order.id),
        )
        return ActionResult.success(f"Picked up order {order.label}", order_id=order.id)

    async def arrive(
        self,
        order_id: int,
        driver_id: int | None = None,
        automatic: bool = False,
        distance_m: float | None = None,
    ) -> ActionResult:
        """Mark the order as arrived.

        Manual arrival requires ``pickedup``; proximity-triggered arrival is
        accepted from any earlier non-terminal state.
        """
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("arrive", order_id)
        if driver_id is not None and order.driver_id not in (None, driver_id):
            return self._invalid("arrive", order, "order is assigned to another driver")

        allowed = (
            OrderTransitions.can_auto_arrive(order.status)
            if automatic
            else OrderTransitions.can_transition(order.status, OrderStatus.ARRIVED)
        )
        if not allowed:
            return self._invalid("arrive", order)

        self._set_status(order, OrderStatus.ARRIVED, automatic=automatic)
        self.store.save()
        await self._stop_session(order, driver_id)

        driver_name = order.driver_name or "your driver"
        await self.notifier.text(
            order.customer_id,
            T.ARRIVED.format(driver=driver_name, label=order.label),
        )
        if automatic:
            distance = round(distance_m or 0)
            await self.notifier.text(
                driver_id or order.driver_id,
                T.AUTO_ARRIVED_DRIVER.format(label=order.label, distance=distance),
            )
            await self.notifier.admin(
                T.AUTO_ARRIVED_ADMIN.format(label=order.label, distance=distance)
            )
        return ActionResult.success(f"Marked order {order.label} as arrived", order_id=order.id)

    async def complete(self, order_id: int) -> ActionResult:
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("complete", order_id)
        if not OrderTransitions.can_transition(order.status, OrderStatus.COMPLETED):
            return self._invalid("complete", order)

        self._set_status(order, OrderStatus.COMPLETED)
        order.driver_status = DriverStatus.ONLINE
        self._release_driver(order)
        self.store.save()
        await self._stop_session(order)

        await self.notifier.text(order.customer_id, T.RATE_PROMPT, feedback_buttons(order.id))
        return ActionResult.success(f"Completed order {order.label}", order_id=order.id)

    async def rate(self, order_id: int, stars: int) -> ActionResult:
        """Store the customer's 1-5 rating and credit the driver."""
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("rate", order_id)
        if not 1 <= stars <= 5:
            return self._invalid("rate", order, "rating must be between 1 and 5")

        first_rating = order.feedback is None
        order.feedback = stars
        if first_rating and order.driver_id is not None:
            for profile in self.registry.shift_profiles.values():
                shift = profile.active_shift
                if shift is not None and order.driver_id in shift.connected_drivers:
                    shift.stars += stars
                    profile.total_stars += stars
        self.store.save()

        await self.notifier.text(
            order.driver_id,
            T.FEEDBACK_DRIVER.format(customer=order.customer_name or "Customer", stars=stars),
        )
        await self.notifier.admin(T.FEEDBACK_ADMIN.format(stars=stars, label=order.label))
        return ActionResult.success(f"Thanks for your {stars}⭐", order_id=order.id)

    async def cancel(self, order_id: int) -> ActionResult:
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("cancel", order_id)
        if order.is_terminal:
            return self._invalid("cancel", order)

        self._set_status(order, OrderStatus.CANCELLED)
        self.clear_edits_for(order.id)
        self._release_driver(order)
        self.store.save()
        await self._stop_session(order)
        return ActionResult.success(T.CANCELLED.format(label=order.label), order_id=order.id)

    def archive(self, order_id: int) -> ActionResult:
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("archive", order_id)
        if not OrderTransitions.can_transition(order.status, OrderStatus.ARCHIVED):
            return self._invalid("archive", order)

        self._set_status(order, OrderStatus.ARCHIVED)
        self.store.save()
        return ActionResult.success(T.ARCHIVED_ONE.format(label=order.label), order_id=order.id)

    def archive_older_than(self, days: int | None = None) -> ActionResult:
        """Archive every order created before the retention window."""
        days = days or self.registry.settings.archive_days
        cutoff = self.clock.now() - timedelta(days=days)

        count = 0
        for order in self.registry.orders.values():
            if order.created_at < cutoff and order.status != OrderStatus.ARCHIVED:
                self._set_status(order, OrderStatus.ARCHIVED, bulk=True)
                count += 1

        if count:
            self.store.save()
        self.logger.logger.info("orders_archived", count=count, days=days)
        return ActionResult.success(T.ARCHIVED_MANY.format(count=count, days=days), count=count)

    async def delete(self, order_id: int) -> ActionResult:
        """Remove the order from the registry for good."""
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("delete", order_id)

        await self._stop_session(order)
        self._release_driver(order)
        del self.registry.orders[order.id]
        self.clear_edits_for(order.id)
        self.store.save()
        self.logger.logger.info("order_deleted", order_id=order.id)
        return ActionResult.success(T.DELETED.format(label=order.label), order_id=order.id)

    # Payment

    def set_payment_method(
        self,
        order_id: int,
        method: str,
        operator_id: int | None = None,
    ) -> ActionResult:
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("setpay", order_id)
        try:
            payment_method = PaymentMethod(method.upper())
        except ValueError:
            return self._invalid("setpay", order, f"unknown payment method {method}")

        order.payment_method = payment_method
        message = f"Payment method set to {payment_method.value}"
        if payment_method == PaymentMethod.CASH:
            order.given_cash = None
            order.change_cash = None
            if operator_id is not None:
                self.begin_edit(operator_id, order.id, EditField.GIVEN_CASH)
            message = T.SEND_GIVEN_CASH.format(label=order.label)
        elif operator_id is not None:
            self.clear_edit(operator_id, order.id)
        self.store.save()
        return ActionResult.success(message, order_id=order.id)

    def mark_paid(self, order_id: int) -> ActionResult:
        """Set the paid flag. Pressing it again changes nothing."""
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("setpaid", order_id)
        if not order.paid:
            order.paid = True
            self.store.save()
            self.logger.logger.info("order_paid", order_id=order.id)
        return ActionResult.success(T.MARKED_PAID, order_id=order.id)

    async def send_delay(self, order_id: int, driver_id: int, minutes: int) -> ActionResult:
        order = self.registry.get_order(order_id)
        driver = self.registry.get_driver(driver_id)
        if order is None or driver is None:
            return self._not_found("delay", order_id)

        await self.notifier.text(
            order.customer_id,
            T.DELAY.format(driver=driver.display_name, minutes=minutes),
        )
        return ActionResult.success(f"Delay message sent ({minutes}mn)", order_id=order.id)

    # Pending edits

    def begin_edit(
        self,
        operator_id: int,
        order_id: int,
        field: EditField | None = None,
    ) -> ActionResult:
        """Route the operator's next free-form message into an order field."""
        order = self.registry.get_order(order_id)
        if order is None:
            return self._not_found("edit", order_id)

        self.registry.pending_edits[operator_id] = PendingEdit(
            operator_id=operator_id, order_id=order.id, field=field
        )
        prompt = ""
        if field is not None:
            prompt = T.EDIT_PROMPTS[field.value].format(label=order.label)
        return ActionResult.success(prompt, order_id=order.id)

    def clear_edit(self, operator_id: int, order_id: int | None = None) -> None:
        pending = self.registry.pending_edits.get(operator_id)
        if pending is None:
            return
        if order_id is None or pending.order_id == order_id:
            del self.registry.pending_edits[operator_id]

    def clear_edits_for(self, order_id: int) -> None:
        for operator_id, pending in list(self.registry.pending_edits.items()):
            if pending.order_id == order_id:
                del self.registry.pending_edits[operator_id]
