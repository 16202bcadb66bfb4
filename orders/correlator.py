"""
Provider Order-Confirmation Correlator

Matches an inbound provider reply to the order notification it answers.

Per inbound message:
    record in message log  -> duplicate id? stop
    media without text     -> logged only
    find pending by phone  -> none? no-op
    classify reply         -> unrecognized? keep waiting
    claim pending row      -> lost race? stop
    affirmative            -> send details, order confirmed, pending removed
    negative               -> order rejected, pending removed

States for one pending confirmation:
    AWAITING_REPLY --affirmative--> CONFIRMED
    AWAITING_REPLY --negative-----> REJECTED
    AWAITING_REPLY --unrecognized-> AWAITING_REPLY

There is no expiry: a pending confirmation waits until a reply resolves it.
"""

import logging
from typing import Optional

from orders.classifier import ReplyClassifier
from orders.phone import try_normalize_phone
from orders.responder import OrderDetailResponder
from orders.store.base import MessageLog, OrderStore, PendingConfirmationIndex
from orders.types import (
    CorrelationOutcome,
    CorrelationResult,
    Order,
    PendingConfirmation,
    Provider,
    ReplyClassification,
)
from transport.whatsapp.schemas import NormalizedMessage, StatusUpdate
from transport.whatsapp.sender import WhatsAppSenderError

logger = logging.getLogger(__name__)

# Meta: re-engagement required / outside 24h window. Provider must write first.
ENGAGEMENT_ERROR_CODES = (131047, 131049)

# Types whose input_text is something the provider typed or tapped
_REPLY_TYPES = ("text", "button", "interactive")


class ConfirmationCorrelator:
    """Runs inbound messages and delivery statuses through the confirmation flow."""

    def __init__(
        self,
        orders: OrderStore,
        pending_index: PendingConfirmationIndex,
        message_log: MessageLog,
        classifier: ReplyClassifier,
        responder: OrderDetailResponder,
        country_code: str = "54",
    ):
        self.country_code = country_code
        self.orders = orders
        self.pending_index = pending_index
        self.message_log = message_log
        self.classifier = classifier
        self.responder = responder

    async def handle_message(self, message: NormalizedMessage) -> CorrelationResult:
        """
        Process one inbound WhatsApp message.

        Never raises for business outcomes (no pending row, unrecognized
        reply, failed send); those come back as CorrelationResult.

        Raises:
            StoreError: Database unavailable
        """
        phone = message.sender_phone
        result = CorrelationResult(
            outcome=CorrelationOutcome.IGNORED,
            message_id=message.message_id,
            sender_phone=phone,
        )

        is_new = self.message_log.record_inbound(
            message_id=message.message_id,
            contact=phone,
            content=message.input_text,
            message_type=message.input_type,
            media_ref=message.media_url,
        )
        if not is_new:
            result.outcome = CorrelationOutcome.DUPLICATE
            return result

        if message.input_type not in _REPLY_TYPES:
            logger.info(
                f"Non-reply message logged: {message.input_type}",
                extra={"sender_id": phone, "message_id": message.message_id},
            )
            return result

        pending = self.pending_index.find(phone)
        if pending is None:
            logger.info(
                f"No pending confirmation for {phone}",
                extra={"sender_id": phone, "message_id": message.message_id},
            )
            result.outcome = CorrelationOutcome.NO_PENDING
            return result

        result.pending_id = pending.id
        result.order_id = pending.order_id

        classification = self.classifier.classify(message.input_text, pending)
        result.classification = classification
        logger.info(
            f"Reply classified as {classification.value}",
            extra={
                "sender_id": phone,
                "message_id": message.message_id,
                "order_id": pending.order_id,
            },
        )

        if classification is ReplyClassification.UNRECOGNIZED:
            result.outcome = CorrelationOutcome.UNRECOGNIZED
            return result

        if not self.pending_index.claim(pending.id):
            logger.info(f"Pending confirmation {pending.id} already being processed")
            result.outcome = CorrelationOutcome.DUPLICATE
            return result

        try:
            order = self.orders.get_order(pending.order_id)
            provider = self.orders.get_provider(order.provider_id) if order else None
        except Exception:
            self.pending_index.release(pending.id)
            raise

        if order is None:
            logger.warning(
                f"Pending confirmation {pending.id} points at missing order {pending.order_id}"
            )
            self.pending_index.remove(pending.id)
            result.outcome = CorrelationOutcome.ORDER_MISSING
            return result

        if classification is ReplyClassification.NEGATIVE:
            return self._reject(order, pending, result)

        return await self._confirm(order, pending, provider, result)

    async def _confirm(
        self,
        order: Order,
        pending: PendingConfirmation,
        provider: Optional[Provider],
        result: CorrelationResult,
    ) -> CorrelationResult:
        try:
            result.detail_message_id = await self.responder.respond(order, pending, provider)
        except WhatsAppSenderError as e:
            result.outcome = CorrelationOutcome.SEND_FAILED
            result.error = str(e)
            return result

        result.outcome = CorrelationOutcome.CONFIRMED
        return result

    def _reject(
        self,
        order: Order,
        pending: PendingConfirmation,
        result: CorrelationResult,
    ) -> CorrelationResult:
        self.pending_index.complete_confirmation(pending.id, order.id, "rejected")
        logger.info(
            f"Order {order.id} rejected by provider",
            extra={"order_id": order.id, "sender_id": pending.provider_phone},
        )
        result.outcome = CorrelationOutcome.REJECTED
        return result

    def handle_status(self, update: StatusUpdate) -> bool:
        """
        Apply a delivery status callback to the message log.

        Failed deliveries caused by engagement errors flag the recipient's
        pending confirmation as requiring manual activation.

        Returns:
            True if a logged message was updated
        """
        error_details = None
        if update.errors:
            error_details = "; ".join(
                f"{e.get('code')}: {e.get('title') or e.get('message') or ''}".strip()
                for e in update.errors
            )

        updated = self.message_log.update_status(update.message_id, update.status, error_details)
        if not updated:
            logger.debug(f"Status for unknown message {update.message_id}: {update.status}")

        if update.status == "failed":
            engagement = [c for c in update.error_codes if c in ENGAGEMENT_ERROR_CODES]
            if engagement:
                self._flag_manual_activation(update, engagement[0])

        return updated

    def _flag_manual_activation(self, update: StatusUpdate, code: int) -> None:
        phone = try_normalize_phone(update.recipient_id, self.country_code)
        pending_id = self.pending_index.mark_manual_activation(
            phone,
            f"Engagement error ({code}). The provider must start the conversation.",
            template_message_id=update.message_id,
        )
        if pending_id is not None:
            logger.warning(
                f"Pending confirmation {pending_id} requires manual activation",
                extra={"sender_id": phone, "error_code": code},
            )
