"""
WhatsApp Webhook Receiver

FastAPI router that receives WhatsApp Cloud API callbacks and hands every
message to the confirmation correlator and every delivery status to the
message log. Transport only: classification and order state live in orders/.
"""

import json
import logging
import uuid
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from config import Config
from infra import bootstrap_infrastructure
from orders.store.base import StoreError

from .normalize import NormalizationError, extract_statuses, normalize_payload
from .security import verify_signature, verify_webhook_challenge

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["WhatsApp Transport"])

BUSINESS_ACCOUNT_OBJECT = "whatsapp_business_account"


# ============================================================================
# WEBHOOK CHALLENGE (Setup only)
# ============================================================================

@router.get("/whatsapp", response_class=PlainTextResponse)
async def whatsapp_webhook_challenge(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
) -> str:
    """
    Verify webhook subscription challenge from Meta.

    Returns:
        The challenge string (plain text)

    Raises:
        HTTPException(403): Invalid token
        HTTPException(400): Invalid mode
        HTTPException(500): Verify token not configured
    """
    challenge = verify_webhook_challenge(
        hub_mode,
        hub_challenge,
        hub_verify_token,
        Config.WHATSAPP_VERIFY_TOKEN,
    )
    logger.info("WhatsApp webhook subscription verified")
    return challenge


# ============================================================================
# WEBHOOK RECEIVER (Message processing)
# ============================================================================

@router.post("/whatsapp")
async def whatsapp_webhook_receiver(request: Request) -> dict[str, Any]:
    """
    Receive WhatsApp messages and delivery statuses via webhook.

    Flow:
    1. Get raw body
    2. Verify signature (401 if missing, 403 if invalid)
    3. Parse and normalize every message and status in the batch
    4. Correlate each message with its pending order confirmation
    5. Apply each status to the message log

    Once the payload is accepted the response is always 200; per-item
    failures are logged and counted, never retried here.

    Raises:
        HTTPException(401): Missing signature
        HTTPException(403): Invalid signature
        HTTPException(422): Invalid JSON
        HTTPException(400): Payload structure invalid
    """
    request_id = str(uuid.uuid4())

    # Step 1: Raw body is what Meta signed
    body = await request.body()

    # Step 2: Verify signature (security boundary)
    try:
        verify_signature(request.headers, body, Config.WHATSAPP_APP_SECRET)
    except HTTPException as e:
        logger.warning(
            f"Signature verification failed: {e.detail}",
            extra={"request_id": request_id},
        )
        raise

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid JSON payload"
        )

    if not isinstance(payload, dict) or payload.get("object") != BUSINESS_ACCOUNT_OBJECT:
        logger.info(
            "Ignoring non WhatsApp Business webhook",
            extra={"request_id": request_id},
        )
        return {"status": "ignored", "request_id": request_id}

    infra = bootstrap_infrastructure()
    correlator = infra.get_correlator()

    # Step 3: Normalize to canonical schema
    try:
        messages = normalize_payload(payload, infra.config.country_code)
        statuses = extract_statuses(payload)
    except NormalizationError as e:
        logger.error(f"Normalization failed: {e}", extra={"request_id": request_id})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Normalization failed: {str(e)}"
        )

    processed = 0
    errors = 0

    # Step 4: Correlate replies
    for message in messages:
        try:
            result = await correlator.handle_message(message)
            processed += 1
            logger.info(
                f"Message processed: {result.outcome.value}",
                extra={
                    "request_id": request_id,
                    "sender_id": message.sender_phone,
                    "message_id": message.message_id,
                    "order_id": result.order_id,
                },
            )
        except StoreError as e:
            errors += 1
            logger.error(
                f"Store error processing message {message.message_id}: {e}",
                extra={"request_id": request_id, "message_id": message.message_id},
            )
        except Exception as e:
            errors += 1
            logger.error(
                f"Unexpected error processing message {message.message_id}: {e}",
                exc_info=True,
                extra={"request_id": request_id, "message_id": message.message_id},
            )

    # Step 5: Delivery statuses
    for update in statuses:
        try:
            correlator.handle_status(update)
            processed += 1
        except Exception as e:
            errors += 1
            logger.error(
                f"Error applying status {update.status} to {update.message_id}: {e}",
                exc_info=True,
                extra={"request_id": request_id, "message_id": update.message_id},
            )

    # Always acknowledge (WhatsApp redelivers on non-200)
    return {
        "status": "ok",
        "processed": processed,
        "errors": errors,
        "request_id": request_id,
    }
