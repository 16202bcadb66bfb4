"""
WhatsApp Transport Layer - Pydantic Schemas

PURE DATA MODELS - NO LOGIC
Defines the contract between the WhatsApp Cloud API and the correlator.
"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

InputType = Literal["text", "image", "audio", "document", "button", "interactive"]


# ============================================================================
# NORMALIZED MESSAGE (THE CONTRACT)
# ============================================================================

class NormalizedMessage(BaseModel):
    """
    Canonical inbound message consumed by the correlator.

    Button and interactive replies carry their visible title in input_text,
    so they classify like typed text.
    """

    input_text: str = Field(
        ...,
        description="Message content. Caption or empty for media."
    )
    sender_id: str = Field(..., description="WhatsApp 'from' as received")
    sender_phone: str = Field(..., description="Normalized phone used for correlation")
    message_id: str = Field(..., description="Unique WhatsApp message ID (wamid)")
    timestamp: datetime = Field(..., description="Message timestamp")
    transport: Literal["whatsapp"] = Field(
        "whatsapp",
        description="Always 'whatsapp' - identifies transport layer"
    )
    input_type: InputType = Field(..., description="Content modality")
    media_url: Optional[str] = Field(
        None,
        description="Media reference (whatsapp://<type>/<id>). None for text."
    )

    class Config:
        """Pydantic config."""
        frozen = True


class StatusUpdate(BaseModel):
    """Delivery status callback for a message we sent."""

    message_id: str
    status: Literal["sent", "delivered", "read", "failed"]
    recipient_id: str
    timestamp: Optional[datetime] = None
    errors: list[dict[str, Any]] = Field(default_factory=list)

    class Config:
        frozen = True

    @property
    def error_codes(self) -> list[int]:
        codes = []
        for error in self.errors:
            try:
                codes.append(int(error.get("code")))
            except (TypeError, ValueError):
                continue
        return codes


# ============================================================================
# WHATSAPP WEBHOOK PAYLOAD SCHEMAS (INPUT)
# ============================================================================

class WhatsAppWebhookPayload(BaseModel):
    """
    Full WhatsApp webhook payload.

    ref: https://developers.facebook.com/docs/whatsapp/cloud-api/webhooks/payload-example
    """

    object: str = Field(..., description="Always 'whatsapp_business_account'")
    entry: list[dict] = Field(default_factory=list, description="Webhook entries")

    class Config:
        extra = "allow"  # WhatsApp may add fields


# ============================================================================
# WHATSAPP API RESPONSE (OUTPUT)
# ============================================================================

class WhatsAppMessageResponse(BaseModel):
    """Response from WhatsApp Cloud API when sending a message."""

    messaging_product: str = Field(default="whatsapp")
    contacts: list[dict[str, Any]] = Field(default_factory=list)
    messages: list[dict[str, Any]] = Field(default_factory=list)

    class Config:
        extra = "allow"

    @property
    def message_id(self) -> Optional[str]:
        if not self.messages:
            return None
        return self.messages[0].get("id")
