"""QR payment codes: management, delivery and proof matching."""

from dispatch.api.gateway import Notifier
from dispatch.engine.results import ActionResult, Outcome
from dispatch.engine.scheduler import Clock
from dispatch.models.events import InboundEvent
from dispatch.models.order import MediaAttachment, PaymentMethod
from dispatch.models.payment import QRCode
from dispatch.state.registry import EntityRegistry
from dispatch.state.store import PersistenceStore
from dispatch.utils.logging import get_logger
from dispatch.utils.templates import MessageTemplates as T

logger = get_logger(__name__)


def media_from_event(event: InboundEvent) -> MediaAttachment | None:
    if event.media is not None:
        return MediaAttachment(
            type=event.media.type,
            file_id=event.media.file_id,
            name=event.media.name,
        )
    if event.text:
        return MediaAttachment(type="text", text=event.text.strip())
    return None


class PaymentDesk:
    """Operator-managed QR codes and customer payment proofs."""

    def __init__(
        self,
        registry: EntityRegistry,
        store: PersistenceStore,
        notifier: Notifier,
        clock: Clock,
    ) -> None:
        self.registry = registry
        self.store = store
        self.notifier = notifier
        self.clock = clock
        # operator id -> QR id waiting for its image or text
        self.pending_uploads: dict[int, str] = {}

    def list_codes(self) -> list[QRCode]:
        return list(self.registry.qr_codes.values())

    def add_code(self, operator_id: int) -> ActionResult:
        """Create an empty code; the operator's next message fills it."""
        now = self.clock.now()
        stamp = int(now.timestamp() * 1000)
        qr_id = str(stamp)
        while qr_id in self.registry.qr_codes:
            stamp += 1
            qr_id = str(stamp)

        qr = QRCode(id=qr_id, code=f"QR-{qr_id}", created_at=now)
        self.registry.qr_codes[qr.id] = qr
        self.pending_uploads[operator_id] = qr.id
        self.store.save()
        logger.info("qr_code_added", qr_id=qr.id)
        return ActionResult.success(T.QR_SEND_PROMPT.format(code=qr.code), qr_id=qr.id)

    def consume_upload(self, operator_id: int, event: InboundEvent) -> ActionResult | None:
        """Attach the operator's message to the code they just added."""
        qr_id = self.pending_uploads.get(operator_id)
        if qr_id is None:
            return None

        qr = self.registry.qr_codes.get(qr_id)
        if qr is None:
            del self.pending_uploads[operator_id]
            return ActionResult.rejected(Outcome.NOT_FOUND, "QR not found")

        media = media_from_event(event)
        if media is None:
            return ActionResult.rejected(Outcome.INVALID, T.UNSUPPORTED_PAYLOAD)

        qr.media = media
        del self.pending_uploads[operator_id]
        self.store.save()
        kind = "image" if media.type == "photo" else media.type
        return ActionResult.success(T.QR_SAVED.format(kind=kind, code=qr.code), qr_id=qr.id)

    def toggle(self, qr_id: str) -> ActionResult:
        qr = self.registry.qr_codes.get(qr_id)
        if qr is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "QR not found")
        qr.enabled = not qr.enabled
        self.store.save()
        state = "enabled" if qr.enabled else "disabled"
        return ActionResult.success(f"QR {qr.code} set {state}", qr_id=qr.id)

    def delete(self, qr_id: str) -> ActionResult:
        qr = self.registry.qr_codes.pop(qr_id, None)
        if qr is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "QR not found")
        for operator_id, pending in list(self.pending_uploads.items()):
            if pending == qr_id:
                del self.pending_uploads[operator_id]
        self.store.save()
        return ActionResult.success(f"Deleted QR {qr.code}")

    async def send(self, qr_id: str, order_id: int) -> ActionResult:
        """Send a code to the order's customer and switch the order to QR."""
        qr = self.registry.qr_codes.get(qr_id)
        order = self.registry.get_order(order_id)
        if qr is None or order is None:
            return ActionResult.rejected(Outcome.NOT_FOUND, "QR or order not found", order_id)
        if order.customer_id is None:
            return ActionResult.rejected(Outcome.INVALID, "Order has no customer", order_id)

        code = qr.media.text if qr.media is not None and qr.media.text else qr.code
        order.payment_method = PaymentMethod.QR
        self.store.save()

        await self.notifier.text(order.customer_id, T.QR_PAY_WITH.format(code=code, label=order.label))
        message = T.QR_SENT.format(code=qr.code, customer=order.customer_name or "customer")
        await self.notifier.admin(message)
        return ActionResult.success(message, order_id=order.id)

    async def match_proof(self, customer_id: int, event: InboundEvent) -> ActionResult | None:
        """Mark the customer's unpaid QR order paid if the proof matches a code.

        Returns ``None`` when the customer has no unpaid QR order or the
        message matches no code, so it can be handled as a normal message.
        """
        order = self.registry.latest_unpaid_qr_order(customer_id)
        if order is None:
            return None

        proof = media_from_event(event)
        text = event.text or event.caption
        matched = next((q for q in self.registry.qr_codes.values() if q.matches(proof, text)), None)
        if matched is None:
            return None

        order.paid = True
        order.payment_method = PaymentMethod.QR
        self.store.save()
        logger.info("order_paid_by_qr", order_id=order.id, qr_id=matched.id)

        await self.notifier.text(order.driver_id, T.PAID_BY_CUSTOMER.format(label=order.label))
        await self.notifier.admin(
            T.PAID_VIA_QR.format(label=order.label, customer=order.customer_name or customer_id)
        )
        return ActionResult.success(T.PAYMENT_RECEIVED.format(label=order.label), order_id=order.id)
