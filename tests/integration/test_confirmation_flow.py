"""
Provider Confirmation Flow Tests

Inbound reply -> pending lookup -> classification -> detail message -> order confirmed.

KEY ASSERTION: one confirmation produces exactly one detail message
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from orders.correlator import ConfirmationCorrelator
from orders.classifier import AnyReplyClassifier, KeywordReplyClassifier, ReplyClassifier
from orders.responder import OrderDetailResponder
from orders.types import CorrelationOutcome, Order, OrderItem, ReplyClassification
from transport.whatsapp.schemas import NormalizedMessage, StatusUpdate
from transport.whatsapp.sender import StubSender, WhatsAppSenderError

PHONE = "+541123456789"


def reply(text: str, message_id: str = "wamid.reply_1", phone: str = PHONE, input_type: str = "text"):
    return NormalizedMessage(
        input_text=text,
        sender_id=phone.lstrip("+"),
        sender_phone=phone,
        message_id=message_id,
        timestamp=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc),
        input_type=input_type,
    )


class TestAffirmativeReply:
    """Affirmative reply sends details and confirms the order."""

    @pytest.mark.asyncio
    async def test_example_scenario(self, repository, correlator, stub_sender, order):
        """Guantes Nitrilo M, caja, 15:00, transferencia, 'dale, confirmo'."""
        repository.create("order-1", PHONE, provider_id="prov-1", user_id="user-1")

        result = await correlator.handle_message(reply("dale, confirmo"))

        assert result.outcome is CorrelationOutcome.CONFIRMED
        assert result.classification is ReplyClassification.AFFIRMATIVE
        assert result.order_id == "order-1"

        texts = stub_sender.texts_to(PHONE)
        assert len(texts) == 1
        detail = texts[0]
        assert "Guantes Nitrilo M: 10 caja" in detail
        assert "15:00" in detail
        assert "transferencia" in detail
        assert "DETALLES DEL PEDIDO - Distribuidora Sur" in detail

        assert repository.get_order("order-1").status == "confirmed"
        assert repository.find(PHONE) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        "Sí, no hay problema",
        "Ok, no hay drama",
        "dale, no te preocupes",
    ])
    async def test_casual_no_still_confirms(self, repository, correlator, stub_sender, order, body):
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply(body))

        assert result.outcome is CorrelationOutcome.CONFIRMED
        assert len(stub_sender.texts_to(PHONE)) == 1
        assert repository.get_order("order-1").status == "confirmed"

    @pytest.mark.asyncio
    async def test_inbound_and_detail_are_logged(self, repository, correlator, order):
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("ok"))

        log = repository.list_for_contact(PHONE)
        assert [m.direction for m in log] == ["inbound", "outbound"]
        assert log[0].content == "ok"
        assert log[1].message_id == result.detail_message_id

    @pytest.mark.asyncio
    async def test_button_reply_confirms(self, repository, correlator, order):
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("Sí", input_type="button"))

        assert result.outcome is CorrelationOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_latest_pending_for_phone_is_confirmed(self, repository, correlator, provider, order):
        repository.create_order(
            Order(
                id="order-2",
                provider_id="prov-1",
                user_id="user-1",
                order_number="ORD-0002",
                items=[OrderItem("Cofias", 5, "paquetes")],
            )
        )
        repository.create("order-1", PHONE)
        repository.create("order-2", PHONE)

        result = await correlator.handle_message(reply("dale"))

        assert result.order_id == "order-2"
        assert repository.get_order("order-2").status == "confirmed"
        assert repository.get_order("order-1").status == "pending"
        assert repository.find(PHONE).order_id == "order-1"


class TestNoMatch:
    """Replies that must not change any state."""

    @pytest.mark.asyncio
    async def test_no_pending_is_noop(self, repository, correlator, stub_sender, order):
        result = await correlator.handle_message(reply("dale, confirmo"))

        assert result.outcome is CorrelationOutcome.NO_PENDING
        assert stub_sender.sent == []
        assert repository.get_order("order-1").status == "pending"
        # Message still logged
        assert len(repository.list_for_contact(PHONE)) == 1

    @pytest.mark.asyncio
    async def test_unrecognized_keeps_waiting(self, repository, correlator, stub_sender, order):
        pending = repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("¿A qué hora pasan?"))

        assert result.outcome is CorrelationOutcome.UNRECOGNIZED
        assert stub_sender.sent == []
        assert repository.find(PHONE).id == pending.id
        assert repository.get_order("order-1").status == "pending"

    @pytest.mark.asyncio
    async def test_unrecognized_then_affirmative(self, repository, correlator, order):
        repository.create("order-1", PHONE)

        await correlator.handle_message(reply("hola", message_id="wamid.a"))
        result = await correlator.handle_message(reply("listo", message_id="wamid.b"))

        assert result.outcome is CorrelationOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_media_without_text_is_only_logged(self, repository, correlator, stub_sender, order):
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("", input_type="image"))

        assert result.outcome is CorrelationOutcome.IGNORED
        assert stub_sender.sent == []
        assert repository.find(PHONE) is not None

    @pytest.mark.asyncio
    async def test_other_phone_does_not_match(self, repository, correlator, order):
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("dale", phone="+543515550000"))

        assert result.outcome is CorrelationOutcome.NO_PENDING
        assert repository.find(PHONE) is not None


class TestNegativeReply:

    @pytest.mark.asyncio
    async def test_rejection_closes_pending_without_details(self, repository, correlator, stub_sender, order):
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("No, sin stock"))

        assert result.outcome is CorrelationOutcome.REJECTED
        assert stub_sender.sent == []
        assert repository.get_order("order-1").status == "rejected"
        assert repository.find(PHONE) is None


class TestAtMostOnce:
    """Same inbound message processed twice sends at most one detail message."""

    @pytest.mark.asyncio
    async def test_redelivered_message_id(self, repository, correlator, stub_sender, order):
        repository.create("order-1", PHONE)

        first = await correlator.handle_message(reply("dale", message_id="wamid.same"))
        second = await correlator.handle_message(reply("dale", message_id="wamid.same"))

        assert first.outcome is CorrelationOutcome.CONFIRMED
        assert second.outcome is CorrelationOutcome.DUPLICATE
        assert len(stub_sender.texts_to(PHONE)) == 1

    @pytest.mark.asyncio
    async def test_concurrent_replies_send_once(self, repository, correlator, stub_sender, order):
        repository.create("order-1", PHONE)

        results = await asyncio.gather(
            correlator.handle_message(reply("dale", message_id="wamid.x")),
            correlator.handle_message(reply("confirmo", message_id="wamid.y")),
        )

        outcomes = sorted(r.outcome.value for r in results)
        assert CorrelationOutcome.CONFIRMED.value in outcomes
        assert len(stub_sender.texts_to(PHONE)) == 1

    @pytest.mark.asyncio
    async def test_reply_during_slow_send_is_not_resent(self, repository, order):
        """A second reply arriving while the first send is in flight finds the row claimed."""

        class SlowSender(StubSender):
            async def send_text(self, to, body):
                await asyncio.sleep(0.01)
                return await super().send_text(to, body)

        sender = SlowSender()
        correlator = ConfirmationCorrelator(
            orders=repository,
            pending_index=repository,
            message_log=repository,
            classifier=KeywordReplyClassifier(),
            responder=OrderDetailResponder(sender, repository, repository),
        )
        repository.create("order-1", PHONE)

        first, second = await asyncio.gather(
            correlator.handle_message(reply("dale", message_id="wamid.x")),
            correlator.handle_message(reply("ok", message_id="wamid.y")),
        )

        assert first.outcome is CorrelationOutcome.CONFIRMED
        assert second.outcome is CorrelationOutcome.NO_PENDING
        assert len(sender.texts_to(PHONE)) == 1

    @pytest.mark.asyncio
    async def test_second_reply_after_confirmation_is_noop(self, repository, correlator, stub_sender, order):
        repository.create("order-1", PHONE)

        await correlator.handle_message(reply("dale", message_id="wamid.1"))
        result = await correlator.handle_message(reply("ok", message_id="wamid.2"))

        assert result.outcome is CorrelationOutcome.NO_PENDING
        assert len(stub_sender.texts_to(PHONE)) == 1


class TestSendFailure:
    """Upstream failure leaves the order untouched and the reply retryable."""

    @pytest.mark.asyncio
    async def test_failed_send_keeps_order_pending(self, repository, correlator, stub_sender, order):
        pending = repository.create("order-1", PHONE)
        stub_sender.fail_with = WhatsAppSenderError("boom", status_code=500, body="{}")

        result = await correlator.handle_message(reply("dale", message_id="wamid.1"))

        assert result.outcome is CorrelationOutcome.SEND_FAILED
        assert repository.get_order("order-1").status == "pending"
        found = repository.find(PHONE)
        assert found.id == pending.id
        assert found.status == "pending_confirmation"

        # Next reply succeeds
        stub_sender.fail_with = None
        retry = await correlator.handle_message(reply("dale", message_id="wamid.2"))
        assert retry.outcome is CorrelationOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_missing_order_drops_pending(self, repository, correlator, stub_sender, provider):
        repository.create("ghost-order", PHONE)

        result = await correlator.handle_message(reply("dale"))

        assert result.outcome is CorrelationOutcome.ORDER_MISSING
        assert stub_sender.sent == []
        assert repository.find(PHONE) is None


class TestPluggableClassifier:

    @pytest.mark.asyncio
    async def test_any_reply_classifier(self, repository, responder, order):
        correlator = ConfirmationCorrelator(
            orders=repository,
            pending_index=repository,
            message_log=repository,
            classifier=AnyReplyClassifier(),
            responder=responder,
        )
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("¿A qué hora pasan?"))

        assert result.outcome is CorrelationOutcome.CONFIRMED

    @pytest.mark.asyncio
    async def test_classifier_sees_matched_pending(self, repository, responder, order):
        classifier = MagicMock(spec=ReplyClassifier)
        classifier.classify.side_effect = lambda body, pending: (
            ReplyClassification.AFFIRMATIVE if pending.order_id == "order-1"
            else ReplyClassification.UNRECOGNIZED
        )
        correlator = ConfirmationCorrelator(
            orders=repository,
            pending_index=repository,
            message_log=repository,
            classifier=classifier,
            responder=responder,
        )
        repository.create("order-1", PHONE)

        result = await correlator.handle_message(reply("cualquier cosa"))

        assert result.outcome is CorrelationOutcome.CONFIRMED


class TestDeliveryStatuses:
    """Engagement errors flag the pending row for manual activation."""

    def test_engagement_error_flags_pending(self, repository, correlator, order):
        repository.create("order-1", PHONE)
        repository.record_outbound("wamid.template", PHONE, "[TEMPLATE: evio_orden]", "template")

        updated = correlator.handle_status(
            StatusUpdate(
                message_id="wamid.template",
                status="failed",
                recipient_id="5491123456789",
                errors=[{"code": 131047, "title": "Re-engagement message"}],
            )
        )

        assert updated is True
        pending = repository.find(PHONE)
        assert pending.status == "manual_activation_required"
        assert "131047" in pending.notes
        assert repository.list_for_contact(PHONE)[0].status == "failed"

    def test_engagement_error_flags_the_failed_notification(self, repository, correlator, order):
        """With two orders open, only the one whose template failed is flagged."""
        repository.create_order(
            Order(id="order-2", provider_id="prov-1", user_id="user-1", order_number="ORD-0002")
        )
        first = repository.create("order-1", PHONE)
        repository.attach_template_message(first.id, "wamid.template_1")
        second = repository.create("order-2", PHONE)
        repository.attach_template_message(second.id, "wamid.template_2")

        correlator.handle_status(
            StatusUpdate(
                message_id="wamid.template_1",
                status="failed",
                recipient_id="5491123456789",
                errors=[{"code": 131049, "title": "Not delivered"}],
            )
        )

        statuses = {p.order_id: p.status for p in repository.list_open(PHONE)}
        assert statuses == {
            "order-1": "manual_activation_required",
            "order-2": "pending_confirmation",
        }

    @pytest.mark.asyncio
    async def test_flagged_pending_still_confirms_on_reply(self, repository, correlator, order):
        repository.create("order-1", PHONE)
        repository.mark_manual_activation(PHONE, "engagement")

        result = await correlator.handle_message(reply("dale"))

        assert result.outcome is CorrelationOutcome.CONFIRMED

    def test_other_failures_do_not_flag(self, repository, correlator, order):
        repository.create("order-1", PHONE)

        correlator.handle_status(
            StatusUpdate(
                message_id="wamid.unknown",
                status="failed",
                recipient_id="5491123456789",
                errors=[{"code": 131026, "title": "Message undeliverable"}],
            )
        )

        assert repository.find(PHONE).status == "pending_confirmation"

    def test_delivered_status_updates_log(self, repository, correlator):
        repository.record_outbound("wamid.out", PHONE, "detalle")

        assert correlator.handle_status(
            StatusUpdate(message_id="wamid.out", status="read", recipient_id="5491123456789")
        ) is True
        assert repository.list_for_contact(PHONE)[0].status == "read"
