"""Live-location sessions: start, slide, forward, expire and rehydrate."""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from dispatch.api.gateway import Notifier
from dispatch.engine.geo import eta_seconds, haversine_m, maps_directions_link
from dispatch.engine.results import ActionResult, Outcome
from dispatch.engine.scheduler import Clock, Timer, TimerScheduler
from dispatch.models.driver import GeoPoint
from dispatch.models.session import LiveSession, SessionState
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore
from dispatch.state.workflow import OrderTransitions
from dispatch.utils.logging import get_logger
from dispatch.utils.templates import MessageTemplates as T

if TYPE_CHECKING:
    from dispatch.engine.lifecycle import OrderLifecycleEngine

logger = get_logger(__name__)


class SessionTimers:
    """Expiry and forwarding timers of one session."""

    def __init__(self, expiry: Timer, forward: Timer) -> None:
        self.expiry = expiry
        self.forward = forward

    def cancel(self) -> None:
        self.expiry.cancel()
        self.forward.cancel()


class LiveSessionScheduler:
    """Time-boxed relay of a driver's position to the order's customer.

    A driver has at most one active session. Each session owns an expiry
    timer, pushed back on every location update, and a periodic timer that
    re-sends the last known location.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        store: PersistenceStore,
        notifier: Notifier,
        scheduler: TimerScheduler,
        clock: Clock,
        ttl_seconds: int = 1800,
        forward_interval_seconds: int = 15,
        arrival_radius_m: float = 40.0,
        speed_kmph: float = 30.0,
    ) -> None:
        self.registry = registry
        self.store = store
        self.notifier = notifier
        self.scheduler = scheduler
        self.clock = clock
        self.ttl = timedelta(seconds=ttl_seconds)
        self.forward_interval_seconds = forward_interval_seconds
        self.arrival_radius_m = arrival_radius_m
        self.speed_kmph = speed_kmph
        self.engine: "OrderLifecycleEngine | None" = None
        self._timers: dict[str, SessionTimers] = {}

    # Timers

    def _arm(self, session: LiveSession) -> None:
        self._disarm(session.id)
        expiry = self.scheduler.call_at(
            session.expires_at,
            lambda: self._on_expiry(session.id),
            name=f"expire:{session.id}",
        )
        forward = self.scheduler.call_every(
            self.forward_interval_seconds,
            lambda: self._on_forward(session.id),
            name=f"forward:{session.id}",
        )
        self._timers[session.id] = SessionTimers(expiry, forward)

    def _rearm_expiry(self, session: LiveSession) -> None:
        timers = self._timers.get(session.id)
        if timers is None:
            self._arm(session)
            return
        timers.expiry.cancel()
        timers.expiry = self.scheduler.call_at(
            session.expires_at,
            lambda: self._on_expiry(session.id),
            name=f"expire:{session.id}",
        )

    def _disarm(self, session_id: str) -> None:
        timers = self._timers.pop(session_id, None)
        if timers is not None:
            timers.cancel()

    def armed_sessions(self) -> list[str]:
        return list(self._timers)

    async def _on_expiry(self, session_id: str) -> None:
        session = self.registry.sessions.get(session_id)
        if session is None or session.ended:
            self._disarm(session_id)
            return
        if session.expires_at > self.clock.now():
            return

        session.end(self.clock.now(), SessionState.EXPIRED)
        self._disarm(session_id)
        self.store.save()
        logger.info(
            "session_expired",
            session_id=session_id,
            driver_id=session.driver_id,
            order_id=session.order_id,
        )

        order = self.registry.get_order(session.order_id)
        await self.notifier.text(session.driver_id, T.LIVE_EXPIRED)
        if order is not None:
            await self.notifier.text(order.customer_id, T.LIVE_ENDED)

    async def _on_forward(self, session_id: str) -> None:
        session = self.registry.sessions.get(session_id)
        if session is None or not session.is_active(self.clock.now()):
            return
        if session.last_location is None:
            return
        order = self.registry.get_order(session.order_id)
        if order is not None:
            await self.notifier.location(order.customer_id, session.last_location)

    # Operations

    def _until(self, when: datetime) -> str:
        return when.strftime("%H:%M:%S")

    async def start(self, driver_id: int, order_id: int) -> ActionResult:
        """Open a session for the driver, replacing any active one."""
        driver = self.registry.get_driver(driver_id)
        order = self.registry.get_order(order_id)
        if driver is None or order is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, T.ORDER_NOT_FOUND, order_id=order_id)
        if order.is_terminal:
            return ActionResult.rejected(
                Outcome.INVALID, f"Order {order.label} is {order.status.value}", order_id=order_id
            )

        now = self.clock.now()
        for existing in list(self.registry.sessions.values()):
            if existing.driver_id == driver_id and not existing.ended:
                existing.end(now)
                self._disarm(existing.id)

        session = LiveSession(
            id=LiveSession.session_id(driver_id, order_id, now),
            driver_id=driver_id,
            order_id=order_id,
            started_at=now,
            expires_at=now + self.ttl,
        )
        self.registry.sessions[session.id] = session
        self._arm(session)
        self.store.save()
        logger.info("session_started", session_id=session.id, expires_at=session.expires_at.isoformat())

        until = self._until(session.expires_at)
        await self.notifier.text(
            order.customer_id,
            T.LIVE_SHARED.format(name=driver.display_name, until=until),
        )
        return ActionResult.success(
            T.LIVE_STARTED.format(name=driver.display_name, until=until),
            order_id=order_id,
            session_id=session.id,
        )

    async def stop(self, driver_id: int, order_id: int, notify: bool = True) -> ActionResult:
        """End the driver's active session for the order, if any."""
        now = self.clock.now()
        session = next(
            (
                s for s in self.registry.sessions.values()
                if s.driver_id == driver_id and s.order_id == order_id and not s.ended
            ),
            None,
        )
        if session is None:
            return ActionResult.rejected(Outcome.INVALID, "No live session", order_id=order_id)

        session.end(now)
        self._disarm(session.id)
        self.store.save()
        logger.info("session_stopped", session_id=session.id)

        driver = self.registry.get_driver(driver_id)
        name = driver.display_name if driver else str(driver_id)
        if notify:
            order = self.registry.get_order(order_id)
            if order is not None:
                await self.notifier.text(order.customer_id, T.LIVE_STOPPED.format(name=name))
        return ActionResult.success(T.LIVE_STOPPED.format(name=name), order_id=order_id)

    async def update_location(self, driver_id: int, lat: float, lon: float) -> ActionResult:
        """Relay a driver's position and check the arrival geofence."""
        now = self.clock.now()
        session = self.registry.active_session_for_driver(driver_id, now)
        if session is None:
            await self.notifier.text(driver_id, T.NO_ACTIVE_LIVE)
            return ActionResult.rejected(Outcome.INVALID, T.NO_ACTIVE_LIVE)

        point = GeoPoint(lat=lat, lon=lon)
        session.last_location = point
        session.expires_at = now + self.ttl
        driver = self.registry.get_driver(driver_id)
        if driver is not None:
            driver.last_location = point
        self._rearm_expiry(session)
        self.store.save()

        order = self.registry.get_order(session.order_id)
        if order is None:
            return ActionResult.success(order_id=session.order_id)
        await self.notifier.location(order.customer_id, point)

        destination = order.destination
        if destination is None:
            return ActionResult.success(order_id=order.id)

        distance = haversine_m(point, destination)
        arrived = False
        if distance <= self.arrival_radius_m and OrderTransitions.can_auto_arrive(order.status):
            if self.engine is not None:
                result = await self.engine.arrive(
                    order.id, driver_id=driver_id, automatic=True, distance_m=distance
                )
                arrived = result.ok
        return ActionResult.success(order_id=order.id, distance_m=distance, arrived=arrived)

    def rehydrate(self) -> int:
        """Drop stale sessions and re-arm timers for the rest.

        Returns the number of sessions dropped.
        """
        now = self.clock.now()
        dropped = []
        for session in list(self.registry.sessions.values()):
            order = self.registry.get_order(session.order_id)
            reason = None
            if not session.is_active(now):
                reason = "ended"
            elif self.registry.get_driver(session.driver_id) is None:
                reason = "missing driver"
            elif order is None:
                reason = "missing order"
            elif order.customer_id is not None and self.registry.get_customer(order.customer_id) is None:
                reason = "missing customer"

            if reason is not None:
                del self.registry.sessions[session.id]
                dropped.append(session.id)
                logger.info("session_dropped", session_id=session.id, reason=reason)
            else:
                self._arm(session)

        if dropped:
            self.store.save()
        logger.info("sessions_rehydrated", armed=len(self._timers), dropped=len(dropped))
        return len(dropped)

    def route_preview(self, order_id: int, driver_id: int) -> ActionResult:
        """Straight-line distance and ETA from the driver to the destination."""
        order = self.registry.get_order(order_id)
        if order is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, T.ORDER_NOT_FOUND, order_id=order_id)

        origin = None
        session = self.registry.active_session_for_driver(driver_id, self.clock.now())
        if session is not None and session.last_location is not None:
            origin = session.last_location
        else:
            driver = self.registry.get_driver(driver_id)
            if driver is not None:
                origin = driver.last_location

        destination = order.destination
        if origin is None or destination is None:
            return ActionResult.success(
                T.ROUTE_PREVIEW.format(distance="N/A", eta="N/A"),
                order_id=order_id,
                available=False,
            )

        distance = haversine_m(origin, destination)
        eta = eta_seconds(distance, self.speed_kmph)
        eta_text = f"{round(eta / 60)} min" if eta is not None else "N/A"
        return ActionResult.success(
            T.ROUTE_PREVIEW.format(distance=f"{round(distance)} m", eta=eta_text),
            order_id=order_id,
            available=True,
            distance_m=distance,
            eta_seconds=eta,
            link=maps_directions_link(origin, destination),
        )
