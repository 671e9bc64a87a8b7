"""Driver roster: registration, approval and presence."""

from dispatch.api.gateway import Button, Notifier
from dispatch.engine.results import ActionResult, Outcome
from dispatch.models.driver import Driver, DriverStatus
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore
from dispatch.utils.logging import get_logger
from dispatch.utils.templates import MessageTemplates as T

logger = get_logger(__name__)

SUPPORTED_LANGUAGES = ("en", "kh")


class DriverRoster:
    """Driver registration and online/offline presence."""

    def __init__(
        self,
        registry: EntityRegistry,
        store: PersistenceStore,
        notifier: Notifier,
    ) -> None:
        self.registry = registry
        self.store = store
        self.notifier = notifier

    async def register(
        self,
        user_id: int,
        name: str = "",
        username: str | None = None,
    ) -> ActionResult:
        """Queue a new driver for operator approval."""
        driver = self.registry.get_driver(user_id)
        if driver is not None and driver.status != DriverStatus.PENDING:
            return ActionResult.rejected(Outcome.INVALID, "You are already registered")

        if driver is None:
            driver = Driver(id=user_id, name=name, username=username)
            self.registry.drivers[user_id] = driver
            self.store.save()
            logger.info("driver_registered", driver_id=user_id)

        await self.notifier.admin(
            T.NEW_DRIVER.format(name=driver.display_name),
            [[
                Button(label="✅ Approve", action=f"drv_approve:{user_id}"),
                Button(label="❌ Reject", action=f"drv_reject:{user_id}"),
            ]],
        )
        return ActionResult.success(T.REG_SENT)

    async def approve(self, driver_id: int) -> ActionResult:
        driver = self.registry.get_driver(driver_id)
        if driver is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "Driver not found")
        if driver.status != DriverStatus.PENDING:
            return ActionResult.rejected(Outcome.INVALID, "Driver already approved")

        driver.status = DriverStatus.OFFLINE
        self.store.save()
        logger.info("driver_approved", driver_id=driver_id)
        await self.notifier.text(driver_id, T.REG_APPROVED)
        return ActionResult.success(f"Driver {driver.display_name} approved")

    async def reject(self, driver_id: int) -> ActionResult:
        driver = self.registry.get_driver(driver_id)
        if driver is None or driver.status != DriverStatus.PENDING:
            return ActionResult.rejected(Outcome.NOT_FOUND, "No pending registration")

        del self.registry.drivers[driver_id]
        self.store.save()
        logger.info("driver_rejected", driver_id=driver_id)
        await self.notifier.text(driver_id, T.REG_REJECTED)
        return ActionResult.success(f"Driver {driver.display_name} rejected")

    async def connect(self, driver_id: int) -> ActionResult:
        """Put an approved driver online and enrol them in open shifts."""
        driver = self.registry.get_driver(driver_id)
        if driver is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, T.NOT_REGISTERED)
        if driver.status == DriverStatus.PENDING:
            return ActionResult.rejected(Outcome.INVALID, T.REG_SENT)

        if driver.status == DriverStatus.OFFLINE:
            driver.status = DriverStatus.ONLINE
        for profile in self.registry.shift_profiles.values():
            shift = profile.active_shift
            if shift is not None and driver_id not in shift.connected_drivers:
                shift.connected_drivers.append(driver_id)
        self.store.save()
        logger.info("driver_connected", driver_id=driver_id, status=driver.status.value)

        await self.notifier.admin(T.DRIVER_CONNECTED.format(name=driver.display_name))
        return ActionResult.success(T.NOW_ONLINE)

    async def disconnect(self, driver_id: int) -> ActionResult:
        driver = self.registry.get_driver(driver_id)
        if driver is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, T.NOT_REGISTERED)
        if driver.status == DriverStatus.PENDING:
            return ActionResult.rejected(Outcome.INVALID, T.REG_SENT)

        driver.status = DriverStatus.OFFLINE
        self.store.save()
        logger.info("driver_disconnected", driver_id=driver_id)

        await self.notifier.admin(T.DRIVER_DISCONNECTED.format(name=driver.display_name))
        return ActionResult.success(T.NOW_OFFLINE)

    def set_language(self, user_id: int, lang: str) -> ActionResult:
        lang = lang.lower()
        if lang not in SUPPORTED_LANGUAGES:
            return ActionResult.rejected(Outcome.INVALID, f"Unsupported language {lang}")

        driver = self.registry.get_driver(user_id)
        if driver is not None:
            driver.lang = lang
        else:
            self.registry.touch_customer(user_id).lang = lang
        self.store.save()
        return ActionResult.success(T.LANGUAGE_SET.format(lang=lang))

    def my_orders(self, driver_id: int) -> ActionResult:
        """List the driver's active orders."""
        active = self.registry.active_orders_for_driver(driver_id)
        if not active:
            return ActionResult.success(T.NO_ACTIVE_ORDERS)
        return ActionResult.success(
            "\n".join(f"{o.label} - {o.status.value}" for o in active),
            count=len(active),
        )

    def stats(self, driver_id: int) -> ActionResult:
        completed = len(self.registry.completed_orders_for_driver(driver_id))
        active = len(self.registry.active_orders_for_driver(driver_id))
        return ActionResult.success(
            T.DRIVER_STATS.format(completed=completed, active=active),
            completed=completed,
            active=active,
        )
