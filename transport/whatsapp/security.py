"""
WhatsApp Signature Verification

SECURITY BOUNDARY - Verify Meta HMAC signature and the subscription challenge.
Secrets are passed in by the caller; nothing here reads the environment.
"""

import hashlib
import hmac
import logging
from typing import Mapping, Optional

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"


def compute_signature(body: bytes, app_secret: str) -> str:
    """Return the 'sha256=<hex>' value Meta puts in X-Hub-Signature-256."""
    digest = hmac.new(
        key=app_secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256,
    ).hexdigest()
    return f"sha256={digest}"


def verify_signature(
    headers: Mapping[str, str],
    body: bytes,
    app_secret: Optional[str],
) -> None:
    """
    Verify Meta HMAC-SHA256 signature on a WhatsApp webhook body.

    Args:
        headers: Request headers (case-insensitive mapping in FastAPI)
        body: Raw request body bytes
        app_secret: Meta app secret

    Raises:
        HTTPException(500): App secret not configured
        HTTPException(401): Missing signature header
        HTTPException(403): Signature mismatch
    """
    if not app_secret:
        logger.error("WHATSAPP_APP_SECRET not configured, rejecting webhook")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="WHATSAPP_APP_SECRET not configured"
        )

    signature = headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {SIGNATURE_HEADER} header"
        )

    # Constant-time compare
    if not hmac.compare_digest(signature, compute_signature(body, app_secret)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid signature"
        )


def verify_webhook_challenge(
    hub_mode: Optional[str],
    hub_challenge: Optional[str],
    hub_verify_token: Optional[str],
    expected_token: Optional[str],
) -> str:
    """
    Verify the webhook subscription challenge.

    Meta calls GET /webhook/whatsapp with hub.mode=subscribe, hub.challenge
    and hub.verify_token. The challenge is echoed back when the token matches.

    Raises:
        HTTPException(500): Verify token not configured
        HTTPException(400): Mode is not "subscribe" or challenge missing
        HTTPException(403): Token mismatch
    """
    if not expected_token:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="WHATSAPP_VERIFY_TOKEN not configured"
        )

    if hub_mode != "subscribe" or not hub_challenge:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid hub.mode"
        )

    if not hub_verify_token or not hmac.compare_digest(hub_verify_token, expected_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid hub.verify_token"
        )

    return hub_challenge
