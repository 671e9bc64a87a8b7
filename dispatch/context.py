"""Process-wide wiring of the dispatch components."""

import asyncio

from dispatch.api.actions import ActionRouter
from dispatch.api.gateway import Gateway, HttpGateway, Notifier
from dispatch.api.messages import MessageRouter
from dispatch.config import Settings, get_settings
from dispatch.engine.drivers import DriverRoster
from dispatch.engine.edits import EditRouter
from dispatch.engine.lifecycle import OrderLifecycleEngine
from dispatch.engine.payments import PaymentDesk
from dispatch.engine.results import ActionResult
from dispatch.engine.scheduler import Clock, SystemClock, TimerScheduler
from dispatch.engine.sessions import LiveSessionScheduler
from dispatch.engine.shifts import ShiftBoard
from dispatch.models.events import InboundEvent
from dispatch.state.lock import AssignmentLock
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import LoadSource, PersistenceStore
from dispatch.utils.logging import get_logger

logger = get_logger(__name__)


class DispatchContext:
    """Owns the registry, store, timers and routers of one process.

    ``startup`` loads the durable document and re-arms live sessions;
    ``shutdown`` cancels every timer and waits for pending writes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        gateway: Gateway | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.admin_id = self.settings.admin_id

        self.registry = EntityRegistry(archive_days=self.settings.archive_days)
        self.store = PersistenceStore(self.registry, self.settings.data_file)
        self.lock = AssignmentLock(self.settings.lock_dir)
        self.scheduler = TimerScheduler(self.clock, self.settings.scheduler_poll_seconds)

        self.gateway = gateway or HttpGateway(
            self.settings.gateway_url,
            self.settings.bot_token,
            timeout=self.settings.gateway_timeout,
        )
        self.notifier = Notifier(self.gateway, self.admin_id)

        self.sessions = LiveSessionScheduler(
            self.registry,
            self.store,
            self.notifier,
            self.scheduler,
            self.clock,
            ttl_seconds=self.settings.session_ttl_seconds,
            forward_interval_seconds=self.settings.forward_interval_seconds,
            arrival_radius_m=self.settings.arrival_radius_m,
            speed_kmph=self.settings.default_speed_kmph,
        )
        self.engine = OrderLifecycleEngine(
            self.registry,
            self.store,
            self.notifier,
            self.lock,
            self.clock,
            sessions=self.sessions,
        )
        self.sessions.engine = self.engine

        self.edits = EditRouter(self.registry, self.store)
        self.roster = DriverRoster(self.registry, self.store, self.notifier)
        self.payments = PaymentDesk(self.registry, self.store, self.notifier, self.clock)
        self.shifts = ShiftBoard(self.registry, self.store, self.clock)

        self.actions = ActionRouter(self)
        self.messages = MessageRouter(self)

        self._event_lock = asyncio.Lock()
        self.load_source: LoadSource | None = None

    def is_operator(self, user_id: int) -> bool:
        return self.admin_id is not None and user_id == self.admin_id

    async def startup(self, run_scheduler: bool = True) -> LoadSource:
        """Load state, drop stale sessions and re-arm the rest."""
        self.load_source = self.store.load()
        self.sessions.rehydrate()
        if run_scheduler:
            self.scheduler.start()
        logger.info(
            "dispatch_started",
            source=self.load_source.value,
            orders=len(self.registry.orders),
            sessions=len(self.sessions.armed_sessions()),
        )
        return self.load_source

    async def shutdown(self) -> None:
        await self.scheduler.close()
        await self.store.flush()
        if isinstance(self.gateway, HttpGateway):
            await self.gateway.aclose()
        logger.info("dispatch_stopped")

    async def handle(self, event: InboundEvent) -> ActionResult | None:
        """Process one inbound event; events are handled one at a time."""
        async with self._event_lock:
            if event.action:
                return await self.actions.handle_action(event)
            if event.is_command:
                return await self.actions.handle_command(event)
            return await self.messages.handle(event)


_context: DispatchContext | None = None


async def get_context() -> DispatchContext:
    """Get the global dispatch context, starting it on first use."""
    global _context
    if _context is None:
        _context = DispatchContext()
        await _context.startup()
    return _context


async def close_context() -> None:
    global _context
    if _context is not None:
        await _context.shutdown()
        _context = None
