"""
Order Detail Responder

Once a provider confirms, sends the full order back over WhatsApp and
closes the pending confirmation.

Ordering:
1. send the detail text
2. on success: order -> confirmed and pending row deleted (one transaction)
3. on failure: claim released, order untouched, error re-raised
"""

import logging
from datetime import date
from typing import Optional

from orders.store.base import MessageLog, PendingConfirmationIndex, StoreError
from orders.types import Order, OrderItem, PendingConfirmation, Provider
from transport.whatsapp.sender import MessageSender, WhatsAppSenderError

logger = logging.getLogger(__name__)

NOT_SPECIFIED = "No especificado"
NOT_SPECIFIED_DATE = "No especificada"


def _format_number(value: float) -> str:
    if value is None:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def _format_date(value: Optional[str]) -> str:
    if not value:
        return NOT_SPECIFIED_DATE
    try:
        return date.fromisoformat(value[:10]).strftime("%d/%m/%Y")
    except ValueError:
        return value


def format_item_line(item: OrderItem) -> str:
    return f"• {item.product_name}: {_format_number(item.quantity)} {item.unit}"


def format_delivery_times(times) -> str:
    """Comma-join delivery time slots in input order."""
    slots = [slot.strip() for slot in (times or []) if slot and slot.strip()]
    return ", ".join(slots) if slots else NOT_SPECIFIED


def format_order_details(order: Order, provider: Optional[Provider] = None) -> str:
    """
    Render the plain-text detail message sent after a confirmation.

    Every item appears once, in stored order, with quantity and unit as
    stored. Missing delivery date, times or payment method render as
    explicit "No especificado" markers.
    """
    header = f"📋 DETALLES DEL PEDIDO - {provider.name}" if provider else "📋 DETALLES DEL PEDIDO"

    if order.items:
        items = "\n".join(format_item_line(item) for item in order.items)
    else:
        items = "No hay items especificados"

    lines = [
        header,
        f"🆔 Orden: {order.order_number}",
        f"📅 Entrega: {_format_date(order.desired_delivery_date)}",
        f"🕒 Horario: {format_delivery_times(order.desired_delivery_time)}",
        f"💳 Pago: {order.payment_method or NOT_SPECIFIED}",
        f"💰 Total: {order.total_amount:.2f} {order.currency}",
        "",
        "📦 Items:",
        items,
    ]

    if order.notes and order.notes.strip():
        lines.extend(["", f"Notas: {order.notes.strip()}"])

    lines.extend(["", "Gracias. Aguardamos la factura.", "", "Saludos!"])
    return "\n".join(lines)


class OrderDetailResponder:
    """Sends order details and commits the confirmation."""

    def __init__(
        self,
        sender: MessageSender,
        pending_index: PendingConfirmationIndex,
        message_log: MessageLog,
    ):
        self.sender = sender
        self.pending_index = pending_index
        self.message_log = message_log

    async def respond(
        self,
        order: Order,
        pending: PendingConfirmation,
        provider: Optional[Provider] = None,
    ) -> Optional[str]:
        """
        Send the detail message for a confirmed order.

        The pending row must already be claimed by the caller.

        Returns:
            WhatsApp message id of the detail message

        Raises:
            WhatsAppSenderError: Upstream rejected the message (claim released)
        """
        text = format_order_details(order, provider)
        phone = pending.provider_phone

        try:
            response = await self.sender.send_text(phone, text)
        except WhatsAppSenderError as e:
            logger.error(
                f"Order details not sent for order {order.id}: {e}",
                extra={
                    "order_id": order.id,
                    "provider_phone": phone,
                    "status_code": e.status_code,
                    "error_body": e.body,
                },
            )
            self.pending_index.release(pending.id)
            raise

        detail_message_id = response.message_id

        if not self.pending_index.complete_confirmation(pending.id, order.id, "confirmed"):
            logger.warning(
                f"Order {order.id} disappeared before confirmation, dropping pending {pending.id}"
            )
            self.pending_index.remove(pending.id)

        try:
            self.message_log.record_outbound(detail_message_id, phone, text)
        except StoreError as e:
            logger.error(f"Detail message sent but not logged: {e}", exc_info=True)

        logger.info(
            f"Order details sent, order {order.id} confirmed",
            extra={
                "order_id": order.id,
                "provider_phone": phone,
                "response_id": detail_message_id,
            },
        )
        return detail_message_id
