"""Outbound side of the messaging gateway."""

import time
from typing import Any, Callable, Protocol

import httpx
from pydantic import BaseModel, Field

from dispatch.models.driver import GeoPoint
from dispatch.utils.logging import DispatchLogger, get_logger

logger = get_logger(__name__)


class Button(BaseModel):
    """Inline button carrying a ``verb:arg`` action."""

    label: str
    action: str | None = None
    url: str | None = None


Keyboard = list[list[Button]]


class OutboundMessage(BaseModel):
    """A message handed to the gateway."""

    kind: str  # "text", "location", "edit_keyboard", "delete"
    chat_id: int
    text: str | None = None
    location: GeoPoint | None = None
    buttons: Keyboard = Field(default_factory=list)
    message_id: int | None = None


class GatewayError(Exception):
    """The gateway could not deliver a message."""


class Gateway(Protocol):
    """What the core needs from the messaging platform."""

    async def send_text(
        self, chat_id: int, text: str, buttons: Keyboard | None = None
    ) -> int | None: ...

    async def send_location(self, chat_id: int, point: GeoPoint) -> int | None: ...

    async def edit_keyboard(
        self, chat_id: int, message_id: int, buttons: Keyboard | None = None
    ) -> None: ...

    async def delete_message(self, chat_id: int, message_id: int) -> None: ...


class ErrorBackoff:
    """Exponential backoff with suppression of repeated identical errors.

    Base 1s, capped at 5 minutes. While inside the window, the same error is
    not reported again and the transport is treated as unavailable.
    """

    def __init__(
        self,
        base_seconds: float = 1.0,
        cap_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_seconds = base_seconds
        self.cap_seconds = cap_seconds
        self.clock = clock
        self.count = 0
        self.last_error: str | None = None
        self.suppressed_until = 0.0

    @property
    def in_backoff(self) -> bool:
        return self.clock() < self.suppressed_until

    def record(self, error: str) -> float | None:
        """Register a failure.

        Returns the new backoff window in seconds, or ``None`` if this is a
        repeat of the error currently being suppressed.
        """
        now = self.clock()
        if error == self.last_error and now < self.suppressed_until:
            return None

        if error != self.last_error:
            self.count = 1
            self.last_error = error
        else:
            self.count += 1

        backoff = min(self.cap_seconds, self.base_seconds * (2 ** max(0, self.count - 1)))
        self.suppressed_until = now + backoff
        return backoff

    def reset(self) -> None:
        self.count = 0
        self.last_error = None
        self.suppressed_until = 0.0


class HttpGateway:
    """Gateway reached over HTTP with JSON payloads."""

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        backoff: ErrorBackoff | None = None,
    ) -> None:
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {token}"},
        )
        self.backoff = backoff or ErrorBackoff()

    async def _post(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        if self.backoff.in_backoff:
            raise GatewayError(f"gateway unavailable ({self.backoff.last_error})")

        try:
            response = await self.client.post(f"/{method}", json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = f"{type(e).__name__}: {e}"
            window = self.backoff.record(error)
            if window is not None:
                logger.error(
                    "gateway_error",
                    method=method,
                    error=error,
                    backoff_seconds=window,
                    count=self.backoff.count,
                )
            raise GatewayError(error) from e

        if self.backoff.count:
            logger.warning("gateway_recovered", after_errors=self.backoff.count)
            self.backoff.reset()

        return response.json() if response.content else {}

    async def send_text(
        self, chat_id: int, text: str, buttons: Keyboard | None = None
    ) -> int | None:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}
        if buttons:
            payload["buttons"] = [[b.model_dump(exclude_none=True) for b in row] for row in buttons]
        result = await self._post("sendText", payload)
        return result.get("message_id")

    async def send_location(self, chat_id: int, point: GeoPoint) -> int | None:
        result = await self._post(
            "sendLocation",
            {"chat_id": chat_id, "latitude": point.lat, "longitude": point.lon},
        )
        return result.get("message_id")

    async def edit_keyboard(
        self, chat_id: int, message_id: int, buttons: Keyboard | None = None
    ) -> None:
        await self._post(
            "editKeyboard",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "buttons": [[b.model_dump(exclude_none=True) for b in row] for row in buttons or []],
            },
        )

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        await self._post("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    async def aclose(self) -> None:
        await self.client.aclose()


class RecordingGateway:
    """In-memory gateway used for dry runs and tests."""

    def __init__(self) -> None:
        self.outbox: list[OutboundMessage] = []
        self.fail = False
        self._next_id = 1

    def _record(self, message: OutboundMessage) -> int:
        if self.fail:
            raise GatewayError("delivery disabled")
        message.message_id = message.message_id or self._next_id
        self._next_id += 1
        self.outbox.append(message)
        return message.message_id

    async def send_text(
        self, chat_id: int, text: str, buttons: Keyboard | None = None
    ) -> int | None:
        return self._record(
            OutboundMessage(kind="text", chat_id=chat_id, text=text, buttons=buttons or [])
        )

    async def send_location(self, chat_id: int, point: GeoPoint) -> int | None:
        return self._record(OutboundMessage(kind="location", chat_id=chat_id, location=point))

    async def edit_keyboard(
        self, chat_id: int, message_id: int, buttons: Keyboard | None = None
    ) -> None:
        self._record(
            OutboundMessage(
                kind="edit_keyboard", chat_id=chat_id, message_id=message_id, buttons=buttons or []
            )
        )

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        self._record(OutboundMessage(kind="delete", chat_id=chat_id, message_id=message_id))

    def texts_to(self, chat_id: int) -> list[str]:
        return [m.text or "" for m in self.outbox if m.kind == "text" and m.chat_id == chat_id]

    def locations_to(self, chat_id: int) -> list[GeoPoint]:
        return [m.location for m in self.outbox if m.kind == "location" and m.chat_id == chat_id]

    def clear(self) -> None:
        self.outbox.clear()


class Notifier:
    """Fire-and-forget delivery: failures are logged, never raised."""

    def __init__(self, gateway: Gateway, admin_id: int | None = None) -> None:
        self.gateway = gateway
        self.admin_id = admin_id
        self.logger = DispatchLogger("notifier")

    async def text(
        self, chat_id: int | None, text: str, buttons: Keyboard | None = None
    ) -> int | None:
        if chat_id is None:
            return None
        try:
            return await self.gateway.send_text(chat_id, text, buttons)
        except Exception as e:
            self.logger.log_delivery_failure("text", chat_id, str(e))
            return None

    async def location(self, chat_id: int | None, point: GeoPoint) -> int | None:
        if chat_id is None:
            return None
        try:
            return await self.gateway.send_location(chat_id, point)
        except Exception as e:
            self.logger.log_delivery_failure("location", chat_id, str(e))
            return None

    async def admin(self, text: str, buttons: Keyboard | None = None) -> int | None:
        if self.admin_id is None:
            logger.info("admin_message_dropped", reason="no admin configured", text=text)
            return None
        return await self.text(self.admin_id, text, buttons)

    async def clear_keyboard(self, chat_id: int, message_id: int | None) -> None:
        if message_id is None:
            return
        try:
            await self.gateway.edit_keyboard(chat_id, message_id, [])
        except Exception as e:
            self.logger.log_delivery_failure("edit_keyboard", chat_id, str(e))

    async def delete(self, chat_id: int, message_id: int | None) -> None:
        if message_id is None:
            return
        try:
            await self.gateway.delete_message(chat_id, message_id)
        except Exception as e:
            self.logger.log_delivery_failure("delete", chat_id, str(e))
