"""
Order Detail Formatting Tests

The detail message must reflect exactly what was stored.
"""

from orders.responder import (
    NOT_SPECIFIED,
    NOT_SPECIFIED_DATE,
    format_delivery_times,
    format_item_line,
    format_order_details,
)
from orders.types import Order, OrderItem, Provider


def _order(**overrides) -> Order:
    fields = dict(
        id="order-1",
        provider_id="prov-1",
        user_id="user-1",
        order_number="ORD-0001",
        items=[OrderItem(product_name="Guantes Nitrilo M", quantity=10, unit="caja")],
        total_amount=12500.0,
        desired_delivery_date="2026-10-20",
        desired_delivery_time=["15:00"],
        payment_method="transferencia",
    )
    fields.update(overrides)
    return Order(**fields)


class TestFormatOrderDetails:

    def test_contains_every_field(self):
        text = format_order_details(_order())

        assert "• Guantes Nitrilo M: 10 caja" in text
        assert "📅 Entrega: 20/10/2026" in text
        assert "🕒 Horario: 15:00" in text
        assert "💳 Pago: transferencia" in text
        assert "💰 Total: 12500.00 ARS" in text
        assert "🆔 Orden: ORD-0001" in text

    def test_provider_name_in_header(self):
        provider = Provider(id="prov-1", user_id="user-1", name="Distribuidora Sur", phone="+541123456789")
        text = format_order_details(_order(), provider)
        assert text.splitlines()[0] == "📋 DETALLES DEL PEDIDO - Distribuidora Sur"

    def test_items_once_in_stored_order(self):
        items = [
            OrderItem(product_name="Guantes Nitrilo M", quantity=10, unit="caja"),
            OrderItem(product_name="Barbijos", quantity=2.5, unit="kg"),
            OrderItem(product_name="Alcohol en gel", quantity=3, unit="litros"),
        ]
        text = format_order_details(_order(items=items))
        lines = [line for line in text.splitlines() if line.startswith("• ")]

        assert lines == [
            "• Guantes Nitrilo M: 10 caja",
            "• Barbijos: 2.5 kg",
            "• Alcohol en gel: 3 litros",
        ]

    def test_missing_optional_fields_are_marked(self):
        text = format_order_details(
            _order(desired_delivery_date=None, desired_delivery_time=[], payment_method=None)
        )

        assert f"📅 Entrega: {NOT_SPECIFIED_DATE}" in text
        assert f"🕒 Horario: {NOT_SPECIFIED}" in text
        assert f"💳 Pago: {NOT_SPECIFIED}" in text

    def test_notes_included_when_present(self):
        assert "Notas: Tocar timbre" in format_order_details(_order(notes="Tocar timbre"))
        assert "Notas:" not in format_order_details(_order(notes="  "))

    def test_unparseable_date_kept_verbatim(self):
        assert "📅 Entrega: la semana que viene" in format_order_details(
            _order(desired_delivery_date="la semana que viene")
        )


class TestHelpers:

    def test_multiple_time_slots_joined(self):
        assert format_delivery_times(["09:00", " 15:00 ", ""]) == "09:00, 15:00"

    def test_item_line_keeps_fractional_quantity(self):
        assert format_item_line(OrderItem("Harina", 1.5, "kg")) == "• Harina: 1.5 kg"
