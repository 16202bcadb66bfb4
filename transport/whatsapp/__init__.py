"""WhatsApp Transport Layer - Module Exports

The webhook router is imported from transport.whatsapp.webhook directly,
since it depends on the infrastructure bootstrap.
"""

from .normalize import (
    NormalizationError,
    extract_sender_id,
    extract_statuses,
    normalize_message,
    normalize_payload,
)
from .schemas import (
    NormalizedMessage,
    StatusUpdate,
    WhatsAppMessageResponse,
    WhatsAppWebhookPayload,
)
from .security import compute_signature, verify_signature, verify_webhook_challenge
from .sender import (
    CloudAPISender,
    MessageSender,
    SenderNotConfiguredError,
    StubSender,
    WhatsAppSenderError,
)

__all__ = [
    # Schemas
    "NormalizedMessage",
    "StatusUpdate",
    "WhatsAppWebhookPayload",
    "WhatsAppMessageResponse",
    # Normalization
    "normalize_message",
    "normalize_payload",
    "extract_statuses",
    "extract_sender_id",
    "NormalizationError",
    # Security
    "compute_signature",
    "verify_signature",
    "verify_webhook_challenge",
    # Sender
    "MessageSender",
    "CloudAPISender",
    "StubSender",
    "WhatsAppSenderError",
    "SenderNotConfiguredError",
]
