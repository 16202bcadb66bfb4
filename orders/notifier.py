"""
Order notification dispatch.

Sends the order template to the provider and opens the pending
confirmation that the provider's reply will later be matched against.
The pending row is committed before the template goes out.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from orders.store.base import MessageLog, OrderStore, PendingConfirmationIndex, StoreError
from orders.types import PendingConfirmation
from transport.whatsapp.sender import MessageSender, WhatsAppSenderError

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Order notification could not be dispatched."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class NotificationResult:
    """Outcome of a successful dispatch."""

    order_id: str
    provider_phone: str
    pending: PendingConfirmation
    template_message_id: Optional[str] = None


class OrderNotifier:
    """Dispatches order notification templates."""

    def __init__(
        self,
        orders: OrderStore,
        pending_index: PendingConfirmationIndex,
        message_log: MessageLog,
        sender: MessageSender,
        template_name: str = "evio_orden",
        template_language: str = "es_AR",
    ):
        self.orders = orders
        self.pending_index = pending_index
        self.message_log = message_log
        self.sender = sender
        self.template_name = template_name
        self.template_language = template_language

    async def notify(self, order_id: str) -> NotificationResult:
        """
        Notify the order's provider and wait for their reply.

        Raises:
            LookupError: Order or provider does not exist
            NotificationError: Order not notifiable or template send failed
        """
        order = self.orders.get_order(order_id)
        if order is None:
            raise LookupError(f"Order {order_id} not found")

        if order.status != "pending":
            raise NotificationError(
                f"Order {order_id} is '{order.status}', only pending orders can be notified"
            )

        provider = self.orders.get_provider(order.provider_id)
        if provider is None:
            raise LookupError(f"Provider {order.provider_id} not found")

        pending = self.pending_index.create(
            order_id=order.id,
            provider_phone=provider.phone,
            provider_id=provider.id,
            user_id=order.user_id,
        )

        variables = {
            "provider_name": provider.name or "Proveedor",
            "contact_name": provider.contact_name or provider.name or "Contacto",
        }

        try:
            response = await self.sender.send_template(
                provider.phone,
                self.template_name,
                self.template_language,
                variables,
            )
        except WhatsAppSenderError as e:
            logger.error(
                f"Order template not sent for order {order.id}: {e}",
                extra={
                    "order_id": order.id,
                    "provider_phone": provider.phone,
                    "status_code": e.status_code,
                    "error_body": e.body,
                },
            )
            self.pending_index.remove(pending.id)
            raise NotificationError(
                f"Template send failed: {e}", status_code=e.status_code
            ) from e

        # Template already delivered: store failures below are logged, not raised
        try:
            self.pending_index.attach_template_message(pending.id, response.message_id)
            pending.template_message_id = response.message_id
            self.message_log.record_outbound(
                response.message_id,
                provider.phone,
                f"[TEMPLATE: {self.template_name}]",
                message_type="template",
            )
        except StoreError as e:
            logger.error(f"Order template sent but not logged: {e}", exc_info=True)

        logger.info(
            f"Order {order.id} notified, awaiting provider reply",
            extra={
                "order_id": order.id,
                "provider_phone": provider.phone,
                "pending_id": pending.id,
            },
        )
        return NotificationResult(
            order_id=order.id,
            provider_phone=provider.phone,
            pending=pending,
            template_message_id=response.message_id,
        )
