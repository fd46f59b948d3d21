"""Webhook ingestion: authenticate, deduplicate and fulfil ``charge.success`` events.

The handler runs a fixed sequence of stages over an ``EventContext``. A stage
either returns ``None`` to continue or a ``WebhookResult`` that ends the run.
Stages may also raise from the error taxonomy; ``handle_event`` maps those to
results:

    AuthenticationFailure -> rejected     (the only non-2xx the gateway sees)
    DataContractViolation -> acknowledged (retrying cannot fix the payload)
    DuplicateEvent        -> acknowledged (redelivery of a processed order)
    DownstreamUnavailable -> retry        (nothing was committed)

Stages after the order write never raise, so a committed order is always
acknowledged.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from pydantic import TypeAdapter, ValidationError

from .errors import AuthenticationFailure, DataContractViolation, DownstreamUnavailable, DuplicateEvent
from .mailer import Notifier, build_confirmation_email
from .models import (
    CHARGE_SUCCESS,
    CartItem,
    ChargeData,
    Order,
    OrderMetadata,
    ShippingInfo,
    WebhookEnvelope,
    from_minor_units,
)
from .settings import Settings
from .signature import verify_signature
from .store import OrderStore

logger = logging.getLogger(__name__)

_cart_items_adapter = TypeAdapter(List[CartItem])


class Outcome(str, Enum):
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    RETRY = "retry"


_STATUS_CODES = {
    Outcome.ACKNOWLEDGED: 200,
    Outcome.REJECTED: 401,
    Outcome.RETRY: 503,
}


@dataclass(frozen=True)
class WebhookResult:
    outcome: Outcome
    reason: str
    order_id: Optional[str] = None

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.outcome]


@dataclass
class EventContext:
    raw_body: bytes
    signature_header: Optional[str]
    envelope: Optional[WebhookEnvelope] = None
    charge: Optional[ChargeData] = None
    metadata: Optional[OrderMetadata] = None
    partition: str = ""
    order: Optional[Order] = None

    @property
    def order_id(self) -> Optional[str]:
        return self.metadata.order_id if self.metadata else None


Stage = Callable[[EventContext], Optional[WebhookResult]]


class WebhookHandler:
    def __init__(self, settings: Settings, store: OrderStore, notifier: Notifier):
        self.settings = settings
        self.store = store
        self.notifier = notifier
        self.stages: Sequence[Stage] = (
            self.authenticate,
            self.parse,
            self.filter_event,
            self.extract_metadata,
            self.deduplicate,
            self.decode_order,
            self.create_order,
            self.clear_cart,
            self.notify,
        )

    def handle_event(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResult:
        """Process one delivery. ``raw_body`` must be the request bytes as received."""
        ctx = EventContext(raw_body=raw_body, signature_header=signature_header)
        for stage in self.stages:
            try:
                result = stage(ctx)
            except AuthenticationFailure as exc:
                logger.warning("Webhook: %s", exc.message)
                return WebhookResult(Outcome.REJECTED, "invalid_signature")
            except DataContractViolation as exc:
                logger.error("Webhook: %s", exc.message)
                return WebhookResult(Outcome.ACKNOWLEDGED, "invalid_payload", ctx.order_id)
            except DuplicateEvent as exc:
                logger.info("Webhook: Order %s has already been processed. Skipping.", exc.order_id)
                return WebhookResult(Outcome.ACKNOWLEDGED, "duplicate", exc.order_id)
            except DownstreamUnavailable as exc:
                logger.error("Webhook: %s, asking gateway to redeliver", exc.message, exc_info=exc)
                return WebhookResult(Outcome.RETRY, "store_unavailable", ctx.order_id)
            if result is not None:
                return result
        return WebhookResult(Outcome.ACKNOWLEDGED, "processed", ctx.order_id)

    # ---------- stages ----------

    def authenticate(self, ctx: EventContext) -> None:
        if not verify_signature(self.settings.paystack_secret_key, ctx.raw_body, ctx.signature_header):
            raise AuthenticationFailure("Webhook received with invalid signature.")

    def parse(self, ctx: EventContext) -> None:
        try:
            ctx.envelope = WebhookEnvelope.model_validate_json(ctx.raw_body)
        except ValidationError as exc:
            raise DataContractViolation(f"Unreadable event body ({exc.error_count()} errors)") from exc

    def filter_event(self, ctx: EventContext) -> Optional[WebhookResult]:
        if ctx.envelope.event != CHARGE_SUCCESS:
            logger.info("Webhook: Ignoring %s event.", ctx.envelope.event)
            return WebhookResult(Outcome.ACKNOWLEDGED, "ignored_event")
        logger.info("Webhook: Received successful charge event.")
        return None

    def extract_metadata(self, ctx: EventContext) -> None:
        try:
            ctx.charge = ChargeData.model_validate(ctx.envelope.data)
        except ValidationError as exc:
            raise DataContractViolation(f"Malformed charge data: {sorted(ctx.envelope.data)}") from exc
        try:
            ctx.metadata = OrderMetadata.model_validate(ctx.charge.metadata)
        except ValidationError as exc:
            raise DataContractViolation(
                f"Missing required metadata from Paystack, got keys {sorted(ctx.charge.metadata)}"
            ) from exc

        ctx.partition = ctx.metadata.store_partition or self.settings.store_partition
        if not ctx.partition:
            raise DataContractViolation(f"No store partition for order {ctx.metadata.order_id}")

    def deduplicate(self, ctx: EventContext) -> None:
        if self.store.order_exists(ctx.partition, ctx.metadata.order_id):
            raise DuplicateEvent(ctx.metadata.order_id)

    def decode_order(self, ctx: EventContext) -> None:
        meta = ctx.metadata
        try:
            items = _cart_items_adapter.validate_json(meta.cart_items)
            shipping = ShippingInfo.model_validate_json(meta.shipping_info)
        except ValidationError as exc:
            raise DataContractViolation(f"Undecodable cart or shipping info for order {meta.order_id}") from exc

        ctx.order = Order(
            partition=ctx.partition,
            order_id=meta.order_id,
            user_id=meta.user_id,
            items=items,
            shipping_info=shipping,
            total_price=from_minor_units(ctx.charge.amount),
            payment_reference=ctx.charge.reference,
            customer_email=ctx.charge.customer.email,
        )

    def create_order(self, ctx: EventContext) -> None:
        # A concurrent delivery may have written it since deduplicate()
        if not self.store.create_order(ctx.order):
            raise DuplicateEvent(ctx.order.order_id)
        logger.info("Webhook: Order %s created for user %s.", ctx.order.order_id, ctx.order.user_id)

    def clear_cart(self, ctx: EventContext) -> None:
        try:
            self.store.clear_cart(ctx.partition, ctx.order.user_id)
        except DownstreamUnavailable as exc:
            logger.error("Webhook: %s (order %s is saved)", exc.message, ctx.order.order_id, exc_info=exc)
            return
        logger.info("Webhook: Cart cleared for user %s.", ctx.order.user_id)

    def notify(self, ctx: EventContext) -> None:
        try:
            email = build_confirmation_email(ctx.order, self.settings.currency)
            self.notifier.send(email.to_address, email.subject, email.html_body)
        except Exception:
            logger.exception("Webhook: Confirmation email for order %s not sent", ctx.order.order_id)
