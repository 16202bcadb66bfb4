"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra import InfraBootstrap, InfraConfig  # noqa: E402
from orders.classifier import KeywordReplyClassifier  # noqa: E402
from orders.correlator import ConfirmationCorrelator  # noqa: E402
from orders.notifier import OrderNotifier  # noqa: E402
from orders.responder import OrderDetailResponder  # noqa: E402
from orders.store import SQLiteOrderRepository  # noqa: E402
from orders.types import Order, OrderItem, Provider  # noqa: E402
from transport.whatsapp.sender import StubSender  # noqa: E402

PROVIDER_PHONE = "+541123456789"
PROVIDER_WA_ID = "5491123456789"
APP_SECRET = "test_app_secret"
VERIFY_TOKEN = "test_verify_token"


def sign(body: bytes, secret: str = APP_SECRET) -> str:
    """X-Hub-Signature-256 value for a body."""
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def text_webhook(body: str, message_id: str = "wamid.reply_1", sender: str = PROVIDER_WA_ID) -> dict:
    """Cloud API webhook payload carrying one text message."""
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA_ID",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {"phone_number_id": "PHONE_ID"},
                    "contacts": [{"wa_id": sender, "profile": {"name": "Marta"}}],
                    "messages": [{
                        "from": sender,
                        "id": message_id,
                        "timestamp": "1760000000",
                        "type": "text",
                        "text": {"body": body},
                    }],
                },
            }],
        }],
    }


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()


@pytest.fixture
def repository(tmp_path):
    """File-backed repository in a temporary directory."""
    repo = SQLiteOrderRepository(db_path=str(tmp_path / "orders.db"))
    yield repo
    repo.close()


@pytest.fixture
def stub_sender():
    return StubSender()


@pytest.fixture
def provider(repository):
    return repository.create_provider(
        Provider(
            id="prov-1",
            user_id="user-1",
            name="Distribuidora Sur",
            phone=PROVIDER_PHONE,
            contact_name="Marta",
        )
    )


@pytest.fixture
def order(repository, provider):
    return repository.create_order(
        Order(
            id="order-1",
            provider_id=provider.id,
            user_id="user-1",
            order_number="ORD-0001",
            items=[OrderItem(product_name="Guantes Nitrilo M", quantity=10, unit="caja")],
            total_amount=12500.0,
            desired_delivery_date="2026-10-20",
            desired_delivery_time=["15:00"],
            payment_method="transferencia",
        )
    )


@pytest.fixture
def responder(repository, stub_sender):
    return OrderDetailResponder(
        sender=stub_sender,
        pending_index=repository,
        message_log=repository,
    )


@pytest.fixture
def correlator(repository, responder):
    return ConfirmationCorrelator(
        orders=repository,
        pending_index=repository,
        message_log=repository,
        classifier=KeywordReplyClassifier(),
        responder=responder,
    )


@pytest.fixture
def notifier(repository, stub_sender):
    return OrderNotifier(
        orders=repository,
        pending_index=repository,
        message_log=repository,
        sender=stub_sender,
    )


@pytest.fixture
def infra(tmp_path):
    """Process-wide bootstrap on a stub sender and a throwaway database."""
    InfraBootstrap.reset()
    instance = InfraBootstrap.get_instance(
        InfraConfig.for_testing(database_path=str(tmp_path / "app.db"))
    )
    yield instance
    InfraBootstrap.reset()
