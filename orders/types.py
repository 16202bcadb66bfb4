"""
Order confirmation domain types.

Plain dataclasses shared by the store, the classifier, the responder and
the correlator. No I/O here.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

OrderStatus = Literal["pending", "confirmed", "rejected", "paid", "cancelled"]
PendingStatus = Literal["pending_confirmation", "manual_activation_required", "processing"]
MessageDirection = Literal["inbound", "outbound"]
MessageStatus = Literal["received", "sent", "delivered", "read", "failed"]

# Pending rows in these states are still waiting for the provider
OPEN_PENDING_STATUSES = ("pending_confirmation", "manual_activation_required")


@dataclass
class OrderItem:
    """A single order line."""

    product_name: str
    quantity: float
    unit: str = "unidades"
    price: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "price": self.price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            product_name=data.get("product_name") or data.get("name") or "",
            quantity=data.get("quantity", 1),
            unit=data.get("unit") or "unidades",
            price=data.get("price"),
        )


@dataclass
class Order:
    """Purchase request from a business user to a provider."""

    id: str
    provider_id: str
    user_id: str
    order_number: str
    items: List[OrderItem] = field(default_factory=list)
    total_amount: float = 0.0
    currency: str = "ARS"
    desired_delivery_date: Optional[str] = None   # ISO date, e.g. "2026-10-20"
    desired_delivery_time: List[str] = field(default_factory=list)
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Provider:
    """Supplier contact reached over WhatsApp."""

    id: str
    user_id: str
    name: str
    phone: str                      # normalized, correlation key
    contact_name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class PendingConfirmation:
    """Links a dispatched order notification to the phone expected to reply."""

    id: int
    order_id: str
    provider_phone: str
    provider_id: Optional[str] = None
    user_id: Optional[str] = None
    status: PendingStatus = "pending_confirmation"
    notes: Optional[str] = None
    template_message_id: Optional[str] = None   # notification that opened the row
    created_at: Optional[datetime] = None


@dataclass
class WhatsAppMessageRecord:
    """Append-only log entry for an inbound or outbound message."""

    id: int
    message_id: Optional[str]
    direction: MessageDirection
    contact: str
    content: str
    message_type: str = "text"
    media_ref: Optional[str] = None
    status: MessageStatus = "received"
    error_details: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReplyClassification(str, Enum):
    """What a provider reply means for the pending order."""

    AFFIRMATIVE = "affirmative"
    NEGATIVE = "negative"
    UNRECOGNIZED = "unrecognized"


class CorrelationOutcome(str, Enum):
    """Result of running one inbound message through the correlator."""

    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    UNRECOGNIZED = "unrecognized"
    NO_PENDING = "no_pending"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    SEND_FAILED = "send_failed"
    ORDER_MISSING = "order_missing"


@dataclass
class CorrelationResult:
    """What happened to an inbound message."""

    outcome: CorrelationOutcome
    message_id: str
    sender_phone: Optional[str] = None
    order_id: Optional[str] = None
    pending_id: Optional[int] = None
    classification: Optional[ReplyClassification] = None
    detail_message_id: Optional[str] = None
    error: Optional[str] = None
