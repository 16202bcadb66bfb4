"""
WhatsApp Webhook Tests

End-to-end flow: signed webhook -> normalization -> correlator -> detail message.

KEY ASSERTION: once accepted, the webhook always answers 200
"""

from typing import Optional
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from config import Config
from conftest import APP_SECRET, PROVIDER_PHONE, VERIFY_TOKEN, encode, sign, text_webhook
from main import app
from orders.store.base import StoreError
from orders.types import Order, OrderItem, Provider
from transport.whatsapp.sender import WhatsAppSenderError


@pytest.fixture
def client(infra):
    with patch.object(Config, "WHATSAPP_APP_SECRET", APP_SECRET), \
            patch.object(Config, "WHATSAPP_VERIFY_TOKEN", VERIFY_TOKEN):
        yield TestClient(app)


@pytest.fixture
def pending_order(infra):
    """Order-1 notified to the provider, awaiting reply."""
    store = infra.get_store()
    store.create_provider(
        Provider(id="prov-1", user_id="user-1", name="Distribuidora Sur", phone=PROVIDER_PHONE)
    )
    store.create_order(
        Order(
            id="order-1",
            provider_id="prov-1",
            user_id="user-1",
            order_number="ORD-0001",
            items=[OrderItem("Guantes Nitrilo M", 10, "caja")],
            desired_delivery_time=["15:00"],
            payment_method="transferencia",
        )
    )
    return store.create("order-1", PROVIDER_PHONE, provider_id="prov-1", user_id="user-1")


def _post(client, payload: dict, signature: Optional[str] = None):
    body = encode(payload)
    return client.post(
        "/webhook/whatsapp",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Hub-Signature-256": signature or sign(body),
        },
    )


class TestWebhookChallenge:

    def test_valid_challenge_echoed(self, client):
        response = client.get(
            "/webhook/whatsapp",
            params={
                "hub.mode": "subscribe",
                "hub.challenge": "1158201444",
                "hub.verify_token": VERIFY_TOKEN,
            },
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token(self, client):
        response = client.get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.challenge": "x", "hub.verify_token": "nope"},
        )
        assert response.status_code == 403

    def test_missing_params(self, client):
        assert client.get("/webhook/whatsapp").status_code == 400


class TestWebhookSecurity:

    def test_missing_signature_returns_401(self, client):
        response = client.post("/webhook/whatsapp", content=encode(text_webhook("dale")))
        assert response.status_code == 401

    def test_invalid_signature_returns_403(self, client, pending_order, infra):
        response = _post(client, text_webhook("dale"), signature="sha256=forged")

        assert response.status_code == 403
        assert infra.sender.sent == []

    def test_unconfigured_secret_returns_500(self, infra):
        with patch.object(Config, "WHATSAPP_APP_SECRET", ""):
            response = _post(TestClient(app), text_webhook("dale"))
        assert response.status_code == 500

    def test_invalid_json_returns_422(self, client):
        body = b"{not json"
        response = client.post(
            "/webhook/whatsapp",
            content=body,
            headers={"X-Hub-Signature-256": sign(body)},
        )
        assert response.status_code == 422

    def test_bad_structure_returns_400(self, client):
        response = _post(client, {"object": "whatsapp_business_account", "entry": "oops"})
        assert response.status_code == 400


class TestWebhookFlow:
    """Provider reply arrives through the webhook."""

    def test_affirmative_reply_confirms_order(self, client, pending_order, infra):
        response = _post(client, text_webhook("dale, confirmo"))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["processed"] == 1
        assert data["errors"] == 0

        texts = infra.sender.texts_to(PROVIDER_PHONE)
        assert len(texts) == 1
        assert "Guantes Nitrilo M: 10 caja" in texts[0]
        assert infra.get_store().get_order("order-1").status == "confirmed"

    def test_redelivered_webhook_sends_once(self, client, pending_order, infra):
        payload = text_webhook("dale", message_id="wamid.redelivered")

        assert _post(client, payload).status_code == 200
        assert _post(client, payload).status_code == 200

        assert len(infra.sender.texts_to(PROVIDER_PHONE)) == 1

    def test_unknown_sender_is_acknowledged(self, client, infra):
        response = _post(client, text_webhook("dale", sender="5493515550000"))

        assert response.status_code == 200
        assert infra.sender.sent == []
        assert len(infra.get_store().list_for_contact("+543515550000")) == 1

    def test_non_whatsapp_object_ignored(self, client, infra):
        response = _post(client, {"object": "page", "entry": []})

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"

    def test_send_failure_still_acknowledged(self, client, pending_order, infra):
        infra.sender.fail_with = WhatsAppSenderError("down", status_code=500, body="{}")

        response = _post(client, text_webhook("dale"))

        assert response.status_code == 200
        assert infra.get_store().get_order("order-1").status == "pending"

    def test_store_failure_counted_not_raised(self, client, infra):
        with patch.object(
            infra.correlator, "handle_message", AsyncMock(side_effect=StoreError("locked"))
        ):
            response = _post(client, text_webhook("dale"))

        assert response.status_code == 200
        assert response.json()["errors"] == 1

    def test_engagement_status_flags_pending(self, client, pending_order, infra):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {"statuses": [{
                "id": "wamid.template",
                "status": "failed",
                "timestamp": "1760000100",
                "recipient_id": "5491123456789",
                "errors": [{"code": 131049, "title": "Not delivered to maintain healthy ecosystem"}],
            }]}}]}],
        }

        response = _post(client, payload)

        assert response.status_code == 200
        assert response.json()["processed"] == 1
        assert infra.get_store().find(PROVIDER_PHONE).status == "manual_activation_required"
