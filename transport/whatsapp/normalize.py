"""
WhatsApp Input Normalization

PURE CONVERSION - NO DATABASE, NO CLASSIFICATION

Converts WhatsApp webhook messages into canonical NormalizedMessage.
- TEXT: Extract body, trim, no enrichment
- BUTTON / INTERACTIVE: Extract the visible reply title
- IMAGE / AUDIO / DOCUMENT: Preserve media reference and caption only

A webhook call can carry several entries, changes and messages; every one
is normalized. Delivery statuses are extracted separately.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from orders.phone import try_normalize_phone

from .schemas import NormalizedMessage, StatusUpdate, WhatsAppWebhookPayload

logger = logging.getLogger(__name__)

_MEDIA_TYPES = ("image", "audio", "document")
_KNOWN_STATUSES = ("sent", "delivered", "read", "failed")


class NormalizationError(Exception):
    """Input normalization failed."""
    pass


def _iter_values(payload: dict):
    """Yield every change value in the payload."""
    entries = payload.get("entry")
    if not isinstance(entries, list):
        raise NormalizationError("Invalid payload structure: 'entry' must be a list")

    for entry in entries:
        changes = entry.get("changes", []) if isinstance(entry, dict) else []
        for change in changes:
            value = change.get("value") if isinstance(change, dict) else None
            if isinstance(value, dict):
                yield value


def normalize_payload(
    payload: dict | WhatsAppWebhookPayload,
    country_code: str = "54",
) -> list[NormalizedMessage]:
    """
    Normalize every message in a webhook payload.

    Unsupported or malformed individual messages are skipped with a warning,
    so one bad message does not block the rest of the batch.

    Raises:
        NormalizationError: Payload itself is structurally invalid
    """
    if isinstance(payload, WhatsAppWebhookPayload):
        payload = payload.model_dump()

    normalized = []
    for value in _iter_values(payload):
        for message in value.get("messages", []) or []:
            try:
                normalized.append(normalize_message(message, country_code))
            except NormalizationError as e:
                logger.warning(
                    f"Skipping message: {e}",
                    extra={"message_id": message.get("id") if isinstance(message, dict) else None},
                )
    return normalized


def normalize_message(message: dict, country_code: str = "54") -> NormalizedMessage:
    """
    Convert a single WhatsApp message object into NormalizedMessage.

    Raises:
        NormalizationError: Missing fields or unsupported message type
    """
    try:
        sender_id = message["from"]
        message_id = message["id"]
        timestamp = int(message["timestamp"])
    except (KeyError, TypeError, ValueError) as e:
        raise NormalizationError(f"Invalid message structure: {e}")

    message_type = message.get("type")
    base = {
        "sender_id": sender_id,
        "sender_phone": try_normalize_phone(sender_id, country_code),
        "message_id": message_id,
        "timestamp": datetime.fromtimestamp(timestamp, tz=timezone.utc),
    }

    if message_type == "text":
        return NormalizedMessage(input_text=_text_body(message), input_type="text", **base)

    if message_type == "button":
        return NormalizedMessage(input_text=_button_text(message), input_type="button", **base)

    if message_type == "interactive":
        return NormalizedMessage(
            input_text=_interactive_title(message), input_type="interactive", **base
        )

    if message_type in _MEDIA_TYPES:
        caption, media_url = _media_reference(message, message_type)
        return NormalizedMessage(
            input_text=caption,
            input_type=message_type,
            media_url=media_url,
            **base,
        )

    raise NormalizationError(f"Unsupported message type: {message_type}")


def _text_body(message: dict) -> str:
    try:
        return message["text"]["body"].strip()
    except (KeyError, TypeError, AttributeError):
        raise NormalizationError("Text message missing 'text.body'")


def _button_text(message: dict) -> str:
    button = message.get("button") or {}
    text = button.get("text") or button.get("payload")
    if not text:
        raise NormalizationError("Button message missing 'button.text'")
    return text.strip()


def _interactive_title(message: dict) -> str:
    interactive = message.get("interactive") or {}
    reply: dict[str, Any] = interactive.get("button_reply") or interactive.get("list_reply") or {}
    title = reply.get("title")
    if not title:
        raise NormalizationError("Interactive message missing reply title")
    return title.strip()


def _media_reference(message: dict, media_type: str) -> tuple[str, str]:
    media = message.get(media_type)
    if not isinstance(media, dict):
        raise NormalizationError(f"{media_type.capitalize()} message missing '{media_type}' object")

    media_id = media.get("id")
    if not media_id:
        raise NormalizationError(f"{media_type.capitalize()} message missing ID")

    # Resolving the download URL needs another Graph API call; keep the id
    caption = (media.get("caption") or media.get("filename") or "").strip()
    return caption, f"whatsapp://{media_type}/{media_id}"


def extract_statuses(payload: dict) -> list[StatusUpdate]:
    """Collect delivery status callbacks from a webhook payload."""
    statuses = []
    for value in _iter_values(payload):
        for raw in value.get("statuses", []) or []:
            if not isinstance(raw, dict) or raw.get("status") not in _KNOWN_STATUSES:
                continue
            try:
                timestamp = raw.get("timestamp")
                statuses.append(
                    StatusUpdate(
                        message_id=raw["id"],
                        status=raw["status"],
                        recipient_id=raw.get("recipient_id", ""),
                        timestamp=(
                            datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
                            if timestamp else None
                        ),
                        errors=raw.get("errors") or [],
                    )
                )
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping malformed status: {e}")
    return statuses


def extract_sender_id(payload: dict) -> str:
    """
    Extract sender phone number of the first message.

    Useful for routing/logging without full normalization.
    """
    try:
        return payload["entry"][0]["changes"][0]["value"]["messages"][0]["from"]
    except (KeyError, IndexError, TypeError):
        raise NormalizationError("Cannot extract sender_id from payload")
