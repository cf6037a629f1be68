"""
Unit tests for the checkout session builder and order totals.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from models.cart import ValidatedCart, ValidatedLine
from services.checkout_builder import (
    MAX_METADATA_KEYS,
    CheckoutSessionBuilder,
    calculate_order_total,
    decode_cart_metadata,
    encode_cart_metadata,
    shipping_for,
)


VERIFIED_AT = datetime(2024, 6, 10, 14, 33, 54, tzinfo=timezone.utc)


def validated_line(product_id="ring-black", price="80.00", quantity=1, size=8, **kw):
    unit = Decimal(price)
    values = dict(
        product_id=product_id,
        provider_product_id=f"prod_{product_id}",
        provider_price_id=f"price_{product_id}",
        verified_unit_price=unit,
        line_total=unit * quantity,
        quantity=quantity,
        verified_at=VERIFIED_AT,
        name="Black Ring",
        description="A black ring",
        images=("https://img.example/ring.png",),
        size=size,
        color="Black",
        category="ring",
    )
    values.update(kw)
    return ValidatedLine(**values)


def cart_of(*lines):
    return ValidatedCart(
        lines=tuple(lines),
        total_amount=sum((l.line_total for l in lines), Decimal("0")),
        validated_at=VERIFIED_AT,
    )


# Fixtures

@pytest.fixture
def builder(settings):
    return CheckoutSessionBuilder(settings)


class TestBuildSession:
    """build_session() output."""

    def test_unit_amount_comes_from_verified_price(self, builder):
        request = builder.build_session(
            cart_of(validated_line(price="80.00", quantity=2)),
            "jane@example.com", "https://shop/success", "https://shop/cancel",
        )

        item = request.line_items[0]
        assert item.unit_amount == 8000
        assert item.quantity == 2
        assert item.currency == "usd"

    def test_sized_line_names_include_size(self, builder):
        request = builder.build_session(
            cart_of(validated_line(size=8)), "jane@example.com", "s", "c"
        )

        item = request.line_items[0]
        assert item.name == "Black Ring - Size 8"
        assert item.description == "Black - Size 8"
        assert item.metadata["size"] == "8"

    def test_unsized_line(self, builder):
        request = builder.build_session(
            cart_of(validated_line("bracelet-cf-marble", "49.99", size=None,
                                   name="Marble", color="Marble")),
            "jane@example.com", "s", "c",
        )

        item = request.line_items[0]
        assert item.name == "Marble"
        assert item.description == "Marble"
        assert item.metadata["size"] == "N/A"
        assert item.metadata["product_id"] == "bracelet-cf-marble"
        assert item.metadata["item_index"] == "1"

    def test_session_fields(self, builder):
        request = builder.build_session(
            cart_of(validated_line()), "jane@example.com",
            "https://shop/success?session_id={CHECKOUT_SESSION_ID}", "https://shop/cancel",
        )

        assert request.customer_email == "jane@example.com"
        assert request.success_url.endswith("{CHECKOUT_SESSION_ID}")
        assert request.allowed_countries == ("US", "CA")
        assert request.metadata["itemCount"] == "1"
        assert request.payment_intent_metadata["validated_at"] == VERIFIED_AT.isoformat()

    def test_shipping_charged_below_threshold(self, builder):
        request = builder.build_session(cart_of(validated_line()), "a@b.co", "s", "c")

        assert request.shipping_amount == 1000
        assert request.shipping_display_name == "Standard Shipping"

    def test_free_shipping_at_threshold(self, builder):
        request = builder.build_session(
            cart_of(validated_line(price="100.00")), "a@b.co", "s", "c"
        )

        assert request.shipping_amount == 0
        assert request.shipping_display_name == "Free Shipping"

    def test_to_params_shape(self, builder):
        params = builder.build_session(
            cart_of(validated_line()), "a@b.co", "s", "c"
        ).to_params()

        assert params["mode"] == "payment"
        assert params["line_items"][0]["price_data"]["unit_amount"] == 8000
        assert params["shipping_address_collection"] == {"allowed_countries": ["US", "CA"]}
        rate = params["shipping_options"][0]["shipping_rate_data"]
        assert rate["fixed_amount"] == {"amount": 1000, "currency": "usd"}


class TestCartMetadata:
    """Encoding and decoding the cart copy kept in session metadata."""

    def test_decode_recovers_encoded_lines(self):
        cart = cart_of(
            validated_line(quantity=2, size=8),
            validated_line("bracelet-cf-marble", "49.99", size=None, name="Marble", color="Marble"),
        )

        items = decode_cart_metadata(encode_cart_metadata(cart))

        assert list(items) == [1, 2]
        assert items[1].product_id == "ring-black"
        assert items[1].size == 8
        assert items[1].quantity == 2
        assert items[1].price == Decimal("80.00")
        assert items[2].size is None
        assert items[2].name == "Marble"

    def test_cart_level_keys(self):
        cart = cart_of(validated_line(quantity=3))

        metadata = encode_cart_metadata(cart)

        assert metadata["itemCount"] == "1"
        assert metadata["totalQuantity"] == "3"
        assert metadata["validatedAmount"] == "240.00"
        assert "Black Ring (Black) Size: 8 x3" in metadata["itemsSummary"]

    def test_all_values_are_strings_within_limits(self):
        cart = cart_of(*[validated_line(name="X" * 800) for _ in range(10)])

        metadata = encode_cart_metadata(cart)

        assert len(metadata) <= MAX_METADATA_KEYS
        assert all(isinstance(v, str) and len(v) <= 500 for v in metadata.values())

    def test_large_cart_keeps_first_lines_only(self):
        cart = cart_of(*[validated_line(f"ring-{i}") for i in range(10)])

        items = decode_cart_metadata(encode_cart_metadata(cart))

        assert len(items) == 6
        assert items[6].product_id == "ring-5"

    def test_decode_tolerates_missing_and_garbled_values(self):
        items = decode_cart_metadata({
            "item1_id": "ring-black",
            "item1_size": "N/A",
            "item1_quantity": "two",
            "item1_price": "abc",
        })

        assert items[1].size is None
        assert items[1].quantity is None
        assert items[1].price is None
        assert items[1].name is None

    @pytest.mark.parametrize("metadata", [None, {}, {"itemCount": "1"}])
    def test_decode_without_lines(self, metadata):
        assert decode_cart_metadata(metadata) == {}


class TestTotals:
    """shipping_for() and calculate_order_total()."""

    def test_shipping_rule(self):
        assert shipping_for(Decimal("99.99"), Decimal("100"), Decimal("10")) == Decimal("10.00")
        assert shipping_for(Decimal("100.00"), Decimal("100"), Decimal("10")) == Decimal("0.00")

    def test_zero_threshold_means_always_free(self):
        assert shipping_for(Decimal("5.00"), Decimal("0"), Decimal("10")) == Decimal("0.00")

    def test_order_total_below_threshold(self):
        totals = calculate_order_total(cart_of(validated_line(price="80.00")))

        assert totals.subtotal == Decimal("80.00")
        assert totals.tax == Decimal("6.40")
        assert totals.shipping == Decimal("10.00")
        assert totals.total == Decimal("96.40")

    def test_order_total_rounds_tax_half_up(self):
        totals = calculate_order_total(
            cart_of(validated_line(price="49.99", quantity=3)),
            shipping_cost=Decimal("10.00"),
        )

        # 149.97 * 0.08 = 11.9976
        assert totals.tax == Decimal("12.00")
        assert totals.shipping == Decimal("0.00")
        assert totals.total == Decimal("161.97")
