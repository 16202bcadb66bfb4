"""
WhatsApp Message Sender

Outbound boundary to the WhatsApp Cloud API (or a Kapso proxy exposing the
same /{phone_number_id}/messages endpoint).
No formatting intelligence. No retries.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .schemas import WhatsAppMessageResponse

logger = logging.getLogger(__name__)


class WhatsAppSenderError(Exception):
    """Failed to send a message to WhatsApp."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SenderNotConfiguredError(WhatsAppSenderError):
    """Access token or phone number id missing."""
    pass


class MessageSender(ABC):
    """
    Abstract outbound messaging boundary.
    Order logic depends ONLY on this interface.
    """

    @abstractmethod
    async def send_text(self, to: str, body: str) -> WhatsAppMessageResponse:
        """Send a free-text message."""
        raise NotImplementedError

    @abstractmethod
    async def send_template(
        self,
        to: str,
        template_name: str,
        language: str = "es_AR",
        variables: Optional[dict[str, str]] = None,
    ) -> WhatsAppMessageResponse:
        """Send an approved template message with named body parameters."""
        raise NotImplementedError


def build_template_payload(
    to: str,
    template_name: str,
    language: str,
    variables: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    """Build the Cloud API body for a template with named parameters."""
    template: dict[str, Any] = {
        "name": template_name,
        "language": {"code": language},
    }
    if variables:
        template["components"] = [
            {
                "type": "body",
                "parameters": [
                    {"type": "text", "parameter_name": name, "text": value}
                    for name, value in variables.items()
                ],
            }
        ]

    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "template",
        "template": template,
    }


class CloudAPISender(MessageSender):
    """
    Sends messages through the Graph API with a bearer token.

    If the API fails: log status and body, raise WhatsAppSenderError.
    """

    def __init__(
        self,
        access_token: Optional[str],
        phone_number_id: Optional[str],
        base_url: str = "https://graph.facebook.com",
        api_version: str = "v18.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/{self.api_version}/{self.phone_number_id}/messages"

    async def send_text(self, to: str, body: str) -> WhatsAppMessageResponse:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        return await self._post(payload, to)

    async def send_template(
        self,
        to: str,
        template_name: str,
        language: str = "es_AR",
        variables: Optional[dict[str, str]] = None,
    ) -> WhatsAppMessageResponse:
        payload = build_template_payload(to, template_name, language, variables)
        return await self._post(payload, to)

    async def _post(self, payload: dict[str, Any], to: str) -> WhatsAppMessageResponse:
        if not self.access_token:
            raise SenderNotConfiguredError("WHATSAPP_ACCESS_TOKEN not configured")
        if not self.phone_number_id:
            raise SenderNotConfiguredError("WHATSAPP_PHONE_NUMBER_ID not configured")

        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.RequestError as e:
            logger.error(
                f"HTTP request failed: {e}",
                exc_info=True,
                extra={"recipient": to, "error": str(e)},
            )
            raise WhatsAppSenderError(f"HTTP request failed: {e}") from e

        if not response.is_success:
            error_text = response.text
            logger.error(
                f"WhatsApp API error: {response.status_code} - {error_text}",
                extra={
                    "status_code": response.status_code,
                    "error_body": error_text,
                    "recipient": to,
                },
            )
            raise WhatsAppSenderError(
                f"WhatsApp API returned {response.status_code}",
                status_code=response.status_code,
                body=error_text,
            )

        try:
            result = WhatsAppMessageResponse(**response.json())
        except (TypeError, ValueError) as e:
            raise WhatsAppSenderError(
                f"Unreadable WhatsApp API response: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        logger.info(
            f"Message sent to {to}",
            extra={
                "recipient": to,
                "message_type": payload["type"],
                "response_id": result.message_id,
            },
        )
        return result


class StubSender(MessageSender):
    """
    Simulation-mode sender for development and tests.

    Never touches the network. Records every message in `sent` and returns
    'sim_' ids. Set `fail_with` to make the next sends raise.
    """

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.fail_with: Optional[WhatsAppSenderError] = None

    async def send_text(self, to: str, body: str) -> WhatsAppMessageResponse:
        return self._record({"to": to, "type": "text", "body": body})

    async def send_template(
        self,
        to: str,
        template_name: str,
        language: str = "es_AR",
        variables: Optional[dict[str, str]] = None,
    ) -> WhatsAppMessageResponse:
        return self._record({
            "to": to,
            "type": "template",
            "template_name": template_name,
            "language": language,
            "variables": dict(variables or {}),
        })

    def _record(self, message: dict[str, Any]) -> WhatsAppMessageResponse:
        if self.fail_with is not None:
            raise self.fail_with

        message_id = f"sim_{uuid.uuid4().hex[:16]}"
        self.sent.append({**message, "id": message_id})
        logger.info(f"[SIMULATION] {message['type']} message to {message['to']}: {message_id}")
        return WhatsAppMessageResponse(
            contacts=[{"input": message["to"], "wa_id": message["to"].lstrip("+")}],
            messages=[{"id": message_id}],
        )

    def texts_to(self, to: str) -> list[str]:
        return [m["body"] for m in self.sent if m["to"] == to and m["type"] == "text"]
