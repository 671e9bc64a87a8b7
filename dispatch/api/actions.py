"""Button callbacks (``verb:arg…``) and slash commands."""

import time
from typing import TYPE_CHECKING, Awaitable, Callable

from dispatch.api.gateway import Button
from dispatch.engine.results import ActionResult, Outcome
from dispatch.models.events import InboundEvent
from dispatch.models.order import EditField
from dispatch.utils.formatting import format_order
from dispatch.utils.logging import DispatchLogger
from dispatch.utils.templates import MessageTemplates as T

if TYPE_CHECKING:
    from dispatch.context import DispatchContext

Handler = Callable[[InboundEvent, list[str]], Awaitable[ActionResult | None]]

OPERATOR_VERBS = frozenset({
    "go", "cancel", "open", "setpay", "setpaid", "settotal", "setloc", "attach",
    "editcust", "edititems", "delete", "drv_approve", "drv_reject", "settings",
    "archive_approve", "archive_reject", "qr", "sendqr", "stats",
})

OPERATOR_COMMANDS = frozenset({
    "create_new_order", "setcustomer", "setsetting", "setordercounter", "archive",
})

EDIT_VERBS = {
    "settotal": EditField.TOTAL_AMOUNT,
    "setloc": EditField.LOCATION,
    "attach": EditField.MEDIA,
    "editcust": EditField.CUSTOMER_NAME,
    "edititems": EditField.ITEMS,
}

DELAY_MINUTES = (5, 10, 15, 20)


def order_edit_buttons(order_id: int) -> list[list[Button]]:
    return [
        [
            Button(label="🚀 GO", action=f"go:{order_id}"),
            Button(label="❌ CANCEL", action=f"cancel:{order_id}"),
        ],
        [
            Button(label="💲 TOTAL", action=f"settotal:{order_id}"),
            Button(label="📍 LOCATION", action=f"setloc:{order_id}"),
            Button(label="📎 ATTACH", action=f"attach:{order_id}"),
        ],
        [
            Button(label="👤 CUSTOMER", action=f"editcust:{order_id}"),
            Button(label="📃 ITEMS", action=f"edititems:{order_id}"),
        ],
        [
            Button(label="💵 CASH", action=f"setpay:CASH:{order_id}"),
            Button(label="🔳 QR", action=f"setpay:QR:{order_id}"),
            Button(label="✅ PAID", action=f"setpaid:{order_id}"),
        ],
        [
            Button(label="📤 SEND QR", action=f"sendqr:{order_id}"),
            Button(label="🗑️ DELETE", action=f"delete:{order_id}"),
        ],
    ]


class ActionRouter:
    """Dispatches callback actions and commands to the engine.

    Each entry point logs and swallows its own failures so that one bad
    event never affects the next.
    """

    def __init__(self, ctx: "DispatchContext"):
        self.ctx = ctx
        self.logger = DispatchLogger("actions")
        self.actions: dict[str, Handler] = {}
        self.commands: dict[str, Handler] = {}
        self.register_actions()
        self.register_commands()

    def register_action(self, verb: str, func: Handler) -> None:
        """Register a callback handler."""
        self.actions[verb] = func

    def register_command(self, name: str, func: Handler) -> None:
        """Register a slash command handler."""
        self.commands[name] = func

    def register_actions(self) -> None:
        self.register_action("go", self._go)
        self.register_action("cancel", self._cancel)
        self.register_action("open", self._open)
        self.register_action("setpay", self._setpay)
        self.register_action("setpaid", self._setpaid)
        for verb in EDIT_VERBS:
            self.register_action(verb, self._edit_field)
        self.register_action("delete", self._delete)
        self.register_action("driver_pickup", self._driver_pickup)
        self.register_action("driver_arrived", self._driver_arrived)
        self.register_action("driver_route", self._driver_route)
        self.register_action("driver_start_live", self._driver_start_live)
        self.register_action("driver_stop_live", self._driver_stop_live)
        self.register_action("driver_delay", self._driver_delay)
        self.register_action("delay", self._delay)
        self.register_action("eta", self._eta)
        self.register_action("fb", self._feedback)
        self.register_action("drv_approve", self._drv_approve)
        self.register_action("drv_reject", self._drv_reject)
        self.register_action("driver_lang", self._driver_lang)
        self.register_action("settings", self._settings)
        self.register_action("archive_approve", self._archive_approve)
        self.register_action("archive_reject", self._archive_reject)
        self.register_action("qr", self._qr)
        self.register_action("sendqr", self._sendqr)
        self.register_action("stats", self._stats)

    def register_commands(self) -> None:
        self.register_command("start", self._cmd_start)
        self.register_command("register", self._cmd_register)
        self.register_command("connect", self._cmd_connect)
        self.register_command("disconnect", self._cmd_disconnect)
        self.register_command("pickup", self._cmd_pickup)
        self.register_command("arrived", self._cmd_arrived)
        self.register_command("complete", self._cmd_complete)
        self.register_command("create_new_order", self._cmd_create_new_order)
        self.register_command("setcustomer", self._cmd_setcustomer)
        self.register_command("setsetting", self._cmd_setsetting)
        self.register_command("setordercounter", self._cmd_setordercounter)
        self.register_command("archive", self._cmd_archive)
        self.register_command("en", self._cmd_language)
        self.register_command("kh", self._cmd_language)

    # Entry points

    async def handle_action(self, event: InboundEvent) -> ActionResult | None:
        parts = event.action_parts
        if not parts:
            return None
        verb, args = parts[0], parts[1:]
        if verb not in self.actions:
            self.logger.log_rejected(verb, "unknown action", sender_id=event.sender_id)
            return None
        if verb in OPERATOR_VERBS and not self.ctx.is_operator(event.sender_id):
            return await self._reply(event, ActionResult.rejected(Outcome.INVALID, T.NOT_ALLOWED))
        return await self._execute(verb, self.actions[verb], event, args)

    async def handle_command(self, event: InboundEvent) -> ActionResult | None:
        words = (event.text or "").strip().split()
        if not words:
            return None
        name = words[0][1:].split("@")[0].lower()
        if name not in self.commands:
            self.logger.log_rejected(name, "unknown command", sender_id=event.sender_id)
            return None
        if name in OPERATOR_COMMANDS and not self.ctx.is_operator(event.sender_id):
            return None
        return await self._execute(name, self.commands[name], event, words[1:])

    async def _execute(
        self,
        name: str,
        func: Handler,
        event: InboundEvent,
        args: list[str],
    ) -> ActionResult | None:
        start_time = time.time()
        try:
            result = await func(event, args)
        except (IndexError, ValueError) as e:
            self.logger.log_rejected(name, f"malformed arguments: {e}", sender_id=event.sender_id)
            result = ActionResult.rejected(Outcome.INVALID, f"Malformed request: {name}")
        except Exception as e:
            self.logger.logger.error(
                "event_failed",
                handler=name,
                sender_id=event.sender_id,
                error=str(e),
                duration_ms=(time.time() - start_time) * 1000,
            )
            return None
        return await self._reply(event, result)

    async def _reply(self, event: InboundEvent, result: ActionResult | None) -> ActionResult | None:
        if result is not None and result.message:
            await self.ctx.notifier.text(event.chat_id, result.message)
        return result

    async def _send_card(self, chat_id: int, order_id: int) -> None:
        order = self.ctx.registry.get_order(order_id)
        if order is not None:
            await self.ctx.notifier.text(chat_id, format_order(order), order_edit_buttons(order.id))

    # Operator actions

    async def _go(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order_id = int(args[0])
        order = self.ctx.registry.get_order(order_id)
        if order is not None and order.customer_id is None:
            return self.ctx.engine.begin_edit(event.sender_id, order_id, EditField.ASSIGN_CUSTOMER)
        driver_id = int(args[1]) if len(args) > 1 else None
        return await self.ctx.engine.assign(order_id, driver_id)

    async def _cancel(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.cancel(int(args[0]))

    async def _open(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order_id = int(args[0])
        result = self.ctx.engine.begin_edit(event.sender_id, order_id)
        if result.ok:
            await self._send_card(event.chat_id, order_id)
        return result

    async def _setpay(self, event: InboundEvent, args: list[str]) -> ActionResult:
        method, order_id = args[0], int(args[1])
        return self.ctx.engine.set_payment_method(order_id, method, operator_id=event.sender_id)

    async def _setpaid(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return self.ctx.engine.mark_paid(int(args[0]))

    async def _edit_field(self, event: InboundEvent, args: list[str]) -> ActionResult:
        field = EDIT_VERBS[event.action_parts[0]]
        return self.ctx.engine.begin_edit(event.sender_id, int(args[0]), field)

    async def _delete(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.delete(int(args[0]))

    async def _drv_approve(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.roster.approve(int(args[0]))

    async def _drv_reject(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.roster.reject(int(args[0]))

    async def _settings(self, event: InboundEvent, args: list[str]) -> ActionResult:
        settings = self.ctx.registry.settings
        sub = args[0] if args else "open"

        if sub == "emojis":
            settings.emojis_mode = not settings.emojis_mode
            self.ctx.store.save()
            state = "enabled" if settings.emojis_mode else "disabled"
            return ActionResult.success(f"Emojis mode {state}")

        if sub == "set":
            key, value = args[1], int(args[2])
            settings.set_value(key, value)
            self.ctx.store.save()
            return ActionResult.success(T.SETTING_SET.format(key=key, value=value))

        if sub == "archive":
            await self.ctx.notifier.text(event.chat_id, "Auto-archive after:", [
                [
                    Button(label=f"{days}d", action=f"settings:set:archiveDays:{days}")
                    for days in (7, 14, 30)
                ],
            ])
            return ActionResult.success()

        await self.ctx.notifier.text(event.chat_id, "Settings", [
            [Button(label=f"🗄️ Archive: {settings.archive_days}d", action="settings:archive")],
            [Button(
                label=f"Emojis: {'on' if settings.emojis_mode else 'off'}",
                action="settings:emojis",
            )],
            [Button(label="🔳 QR codes", action="qr:list")],
        ])
        return ActionResult.success()

    async def _archive_approve(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order_id = int(args[0]) if args and args[0] else 0
        if order_id > 0:
            return self.ctx.engine.archive(order_id)
        return self.ctx.engine.archive_older_than()

    async def _archive_reject(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return ActionResult.success("Archive rejected")

    async def _qr(self, event: InboundEvent, args: list[str]) -> ActionResult:
        payments = self.ctx.payments
        sub = args[0] if args else "list"

        if sub == "add":
            return payments.add_code(event.sender_id)
        if sub == "toggle":
            return payments.toggle(args[1])
        if sub == "del":
            return payments.delete(args[1])
        if sub == "send":
            return await payments.send(args[1], int(args[2]))

        rows = [
            [Button(label=f"{'✅' if q.enabled else '⬜'} {q.code}", action=f"qr:toggle:{q.id}"),
             Button(label="🗑️", action=f"qr:del:{q.id}")]
            for q in payments.list_codes()
        ]
        rows.append([Button(label="➕ Add QR", action="qr:add")])
        await self.ctx.notifier.text(event.chat_id, "QR Codes", rows)
        return ActionResult.success()

    async def _sendqr(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order = self.ctx.registry.get_order(int(args[0]))
        if order is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, T.ORDER_NOT_FOUND)
        rows = [
            [Button(label=q.code, action=f"qr:send:{q.id}:{order.id}")]
            for q in self.ctx.payments.list_codes() if q.enabled
        ]
        if not rows:
            return ActionResult.rejected(Outcome.INVALID, "No QR codes enabled")
        await self.ctx.notifier.text(event.chat_id, f"Send which QR to order {order.label}?", rows)
        return ActionResult.success()

    async def _stats(self, event: InboundEvent, args: list[str]) -> ActionResult:
        shifts = self.ctx.shifts
        sub = args[0] if args else ""

        if sub == "new_profile":
            return shifts.begin_profile(event.sender_id)
        if sub == "open":
            return shifts.summary(int(args[1]))
        if sub == "start":
            return shifts.start_shift(int(args[1]))
        if sub == "close":
            return shifts.close_shift(int(args[1]))

        rows = [[Button(label="➕ NEW PROFILE", action="stats:new_profile")]]
        rows.extend(
            [Button(label=f"{p.name} ({p.id})", action=f"stats:open:{p.id}")]
            for p in self.ctx.registry.shift_profiles.values()
        )
        await self.ctx.notifier.text(event.chat_id, T.STATS.format(**self.ctx.registry.stats()), rows)
        return ActionResult.success()

    # Driver actions

    async def _driver_pickup(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.pickup(int(args[0]), driver_id=event.sender_id)

    async def _driver_arrived(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.arrive(int(args[0]), driver_id=event.sender_id)

    async def _driver_route(self, event: InboundEvent, args: list[str]) -> ActionResult | None:
        result = self.ctx.sessions.route_preview(int(args[0]), event.sender_id)
        if not result.ok:
            return result
        buttons = None
        if result.data.get("link"):
            buttons = [[Button(label="🗺️ Open in Maps", url=result.data["link"])]]
        await self.ctx.notifier.text(event.chat_id, result.message, buttons)
        return result.model_copy(update={"message": ""})

    async def _driver_start_live(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.sessions.start(event.sender_id, int(args[0]))

    async def _driver_stop_live(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.sessions.stop(event.sender_id, int(args[0]))

    async def _driver_delay(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order_id = int(args[0])
        await self.ctx.notifier.text(event.chat_id, "How late will you be?", [[
            Button(label=f"{minutes}mn", action=f"delay:{order_id}:{minutes}")
            for minutes in DELAY_MINUTES
        ]])
        return ActionResult.success(order_id=order_id)

    async def _delay(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.send_delay(int(args[0]), event.sender_id, int(args[1]))

    async def _driver_lang(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return self.ctx.roster.set_language(event.sender_id, args[0])

    # Customer actions

    async def _eta(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order = self.ctx.registry.get_order(int(args[0]))
        if order is None or order.driver_id is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, T.ORDER_NOT_FOUND)
        return self.ctx.sessions.route_preview(order.id, order.driver_id)

    async def _feedback(self, event: InboundEvent, args: list[str]) -> ActionResult:
        stars, order_id = int(args[0]), int(args[1])
        order = self.ctx.registry.get_order(order_id)
        if order is not None and event.sender_id not in (order.customer_id, self.ctx.admin_id):
            return ActionResult.rejected(Outcome.INVALID, T.NOT_ALLOWED, order_id)
        return await self.ctx.engine.rate(order_id, stars)

    # Commands

    async def _cmd_start(self, event: InboundEvent, args: list[str]) -> ActionResult:
        if self.ctx.is_operator(event.sender_id):
            return ActionResult.success("Admin menu")
        self.ctx.registry.touch_customer(event.sender_id, event.sender_name, event.username)
        self.ctx.store.save()
        return ActionResult.success(T.WELCOME.format(name=event.sender_name or "friend"))

    async def _cmd_register(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.roster.register(event.sender_id, event.sender_name, event.username)

    async def _cmd_connect(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.roster.connect(event.sender_id)

    async def _cmd_disconnect(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.roster.disconnect(event.sender_id)

    def _acting_driver(self, event: InboundEvent) -> int | None:
        return None if self.ctx.is_operator(event.sender_id) else event.sender_id

    async def _cmd_pickup(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.pickup(int(args[0]), driver_id=self._acting_driver(event))

    async def _cmd_arrived(self, event: InboundEvent, args: list[str]) -> ActionResult:
        return await self.ctx.engine.arrive(int(args[0]), driver_id=self._acting_driver(event))

    async def _cmd_complete(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order = self.ctx.registry.get_order(int(args[0]))
        driver_id = self._acting_driver(event)
        if order is not None and driver_id is not None and order.driver_id != driver_id:
            return ActionResult.rejected(Outcome.INVALID, T.NOT_ALLOWED, order.id)
        return await self.ctx.engine.complete(int(args[0]))

    async def _cmd_create_new_order(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order = self.ctx.engine.create(customer_name=event.sender_name or "Admin")
        self.ctx.engine.begin_edit(event.sender_id, order.id)
        await self.ctx.notifier.text(event.chat_id, T.NEW_ORDER_CREATED)
        await self._send_card(event.chat_id, order.id)
        return ActionResult.success(order_id=order.id)

    async def _cmd_setcustomer(self, event: InboundEvent, args: list[str]) -> ActionResult:
        pending = self.ctx.registry.pending_edits.get(event.sender_id)
        if pending is None or pending.field != EditField.ASSIGN_CUSTOMER:
            return ActionResult.rejected(
                Outcome.INVALID, "No order is waiting for customer assignment."
            )
        value = " ".join(args)
        if not value:
            return ActionResult.rejected(Outcome.INVALID, "Usage: /setcustomer <user_id|@username>")
        return self.ctx.edits.consume(
            event.sender_id, event.model_copy(update={"text": value})
        )

    async def _cmd_setsetting(self, event: InboundEvent, args: list[str]) -> ActionResult:
        key, value = args[0], int(args[1])
        self.ctx.registry.settings.set_value(key, value)
        self.ctx.store.save()
        return ActionResult.success(T.SETTING_SET.format(key=key, value=value))

    async def _cmd_setordercounter(self, event: InboundEvent, args: list[str]) -> ActionResult:
        force = len(args) > 1 and args[1].lower() == "force"
        return self.ctx.engine.set_order_counter(int(args[0]), force=force)

    async def _cmd_archive(self, event: InboundEvent, args: list[str]) -> ActionResult:
        order_id = int(args[0]) if args else 0
        if order_id:
            text = f"Request to archive order #{order_id:04d}"
        else:
            text = f"Request to archive orders older than {self.ctx.registry.settings.archive_days} days"
        await self.ctx.notifier.text(event.chat_id, text, [[
            Button(label="✅ Approve", action=f"archive_approve:{order_id}"),
            Button(label="❌ Reject", action=f"archive_reject:{order_id}"),
        ]])
        return ActionResult.success()

    async def _cmd_language(self, event: InboundEvent, args: list[str]) -> ActionResult:
        lang = (event.text or "").strip().split()[0][1:].split("@")[0]
        return self.ctx.roster.set_language(event.sender_id, lang)
