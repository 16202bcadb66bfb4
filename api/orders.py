"""
Internal order API.

Registers providers, creates orders, dispatches the order notification
template and exposes pending confirmations and the message log for
inspection. Provider replies arrive through the WhatsApp webhook, not here.
"""

import logging
import uuid
from dataclasses import asdict
from datetime import date
from typing import Any, List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from infra import bootstrap_infrastructure
from orders.notifier import NotificationError
from orders.phone import PhoneNumberError, normalize_phone
from orders.store.base import StoreError
from orders.types import Order, OrderItem, Provider
from transport.whatsapp.sender import SenderNotConfiguredError, WhatsAppSenderError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Orders"])


# ============================================================================
# REQUEST MODELS
# ============================================================================

class ProviderCreate(BaseModel):
    """Provider registration request."""

    id: Optional[str] = None
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1, description="Any common format, normalized on save")
    contact_name: Optional[str] = None


class OrderItemIn(BaseModel):
    """Single order line."""

    product_name: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0)
    unit: str = "unidades"
    price: Optional[float] = Field(None, ge=0)


class OrderCreate(BaseModel):
    """Order creation request."""

    id: Optional[str] = None
    provider_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    order_number: Optional[str] = None
    items: List[OrderItemIn] = Field(..., min_length=1)
    total_amount: float = Field(0.0, ge=0)
    currency: str = "ARS"
    desired_delivery_date: Optional[date] = None
    desired_delivery_time: List[str] = Field(default_factory=list)
    payment_method: Optional[str] = None
    notes: Optional[str] = None


# ============================================================================
# HELPERS
# ============================================================================

def _store():
    return bootstrap_infrastructure().get_store()


def _store_failure(e: StoreError) -> HTTPException:
    logger.error(f"Store error: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Storage unavailable"
    )


def _order_to_dict(order: Order) -> dict[str, Any]:
    return asdict(order)


# ============================================================================
# PROVIDERS
# ============================================================================

@router.post("/providers", status_code=status.HTTP_201_CREATED)
async def create_provider(request: ProviderCreate) -> dict[str, Any]:
    """Register a provider. The phone is stored normalized."""
    try:
        phone = normalize_phone(request.phone, bootstrap_infrastructure().config.country_code)
    except PhoneNumberError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    store = _store()
    provider_id = request.id or str(uuid.uuid4())
    try:
        if store.get_provider(provider_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Provider {provider_id} already exists"
            )
        provider = store.create_provider(
            Provider(
                id=provider_id,
                user_id=request.user_id,
                name=request.name,
                phone=phone,
                contact_name=request.contact_name,
            )
        )
    except StoreError as e:
        raise _store_failure(e)

    return asdict(provider)


@router.get("/providers/{provider_id}")
async def get_provider(provider_id: str) -> dict[str, Any]:
    try:
        provider = _store().get_provider(provider_id)
    except StoreError as e:
        raise _store_failure(e)

    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found")
    return asdict(provider)


# ============================================================================
# ORDERS
# ============================================================================

@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_order(request: OrderCreate) -> dict[str, Any]:
    """Create an order in 'pending' status. Does not notify the provider."""
    store = _store()
    order_id = request.id or str(uuid.uuid4())

    try:
        if store.get_provider(request.provider_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found")
        if store.get_order(order_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Order {order_id} already exists"
            )

        order = store.create_order(
            Order(
                id=order_id,
                provider_id=request.provider_id,
                user_id=request.user_id,
                order_number=request.order_number or f"ORD-{order_id[:8].upper()}",
                items=[OrderItem(**item.model_dump()) for item in request.items],
                total_amount=request.total_amount,
                currency=request.currency,
                desired_delivery_date=(
                    request.desired_delivery_date.isoformat()
                    if request.desired_delivery_date else None
                ),
                desired_delivery_time=request.desired_delivery_time,
                payment_method=request.payment_method,
                notes=request.notes,
            )
        )
    except StoreError as e:
        raise _store_failure(e)

    return _order_to_dict(order)


@router.get("/orders/{order_id}")
async def get_order(order_id: str) -> dict[str, Any]:
    try:
        order = _store().get_order(order_id)
    except StoreError as e:
        raise _store_failure(e)

    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return _order_to_dict(order)


@router.post("/orders/{order_id}/notify")
async def notify_order(order_id: str) -> dict[str, Any]:
    """
    Send the order template to the provider and open a pending confirmation.

    Raises:
        HTTPException(404): Order or provider not found
        HTTPException(409): Order is not pending
        HTTPException(500): WhatsApp credentials not configured
        HTTPException(502): WhatsApp API rejected the template
    """
    notifier = bootstrap_infrastructure().get_notifier()
    try:
        result = await notifier.notify(order_id)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except NotificationError as e:
        if isinstance(e.__cause__, SenderNotConfiguredError):
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e.__cause__)
            )
        if isinstance(e.__cause__, WhatsAppSenderError):
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except StoreError as e:
        raise _store_failure(e)

    return {
        "status": "sent",
        "order_id": result.order_id,
        "provider_phone": result.provider_phone,
        "pending_id": result.pending.id,
        "message_id": result.template_message_id,
    }


@router.post("/orders/{order_id}/paid")
async def mark_order_paid(order_id: str) -> dict[str, Any]:
    """Link a payment to a confirmed order."""
    store = _store()
    try:
        if not store.mark_paid(order_id):
            order = store.get_order(order_id)
            if order is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Order is '{order.status}', only confirmed orders can be paid"
            )
        order = store.get_order(order_id)
    except StoreError as e:
        raise _store_failure(e)

    return _order_to_dict(order)


# ============================================================================
# INSPECTION
# ============================================================================

@router.get("/pending-orders")
async def list_pending_orders(phone: Optional[str] = Query(None)) -> dict[str, Any]:
    """Open pending confirmations, optionally for one provider phone."""
    normalized = None
    if phone:
        try:
            normalized = normalize_phone(phone, bootstrap_infrastructure().config.country_code)
        except PhoneNumberError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        pending = _store().list_open(normalized)
    except StoreError as e:
        raise _store_failure(e)

    return {"pending": [asdict(p) for p in pending], "count": len(pending)}


@router.get("/messages")
async def list_messages(
    contact: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=500),
) -> dict[str, Any]:
    """Logged WhatsApp traffic for one contact, in the order it happened."""
    try:
        contact = normalize_phone(contact, bootstrap_infrastructure().config.country_code)
    except PhoneNumberError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        messages = _store().list_for_contact(contact, limit)
    except StoreError as e:
        raise _store_failure(e)

    return {"messages": [asdict(m) for m in messages], "count": len(messages)}
