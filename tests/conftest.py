"""Shared fixtures: settings, a stocked fake provider, stores and notifiers."""

from decimal import Decimal

import pytest

from config import CheckoutSettings
from models.catalog import ProductMapping
from services.order_ids import SequentialOrderIdGenerator
from services.order_store import InMemoryOrderStore

from fakes import FakeProviderClient, RecordingNotifier, make_product


@pytest.fixture
def settings():
    """Checkout settings with two rings and one bracelet mapped."""
    return CheckoutSettings(
        products=(
            ProductMapping("ring-black", "prod_ring_black", "ring"),
            ProductMapping("ring-white", "prod_ring_white", "ring"),
            ProductMapping("bracelet-cf-marble", "prod_cf_marble", "bracelet"),
        ),
        allowed_countries=("US", "CA"),
        free_shipping_threshold=Decimal("100"),
        standard_shipping_rate=Decimal("10.00"),
        tax_rate=Decimal("0.08"),
        webhook_secret="whsec_test",
        validation_concurrency=4,
    )


@pytest.fixture
def provider():
    """Fake provider stocked with the mapped products."""
    return FakeProviderClient([
        make_product("prod_ring_black", "Black Ring", 8000),
        make_product("prod_ring_white", "White Ring", 8500),
        make_product("prod_cf_marble", "Carbon Fiber Marble Bracelet", 4999),
    ])


@pytest.fixture
def order_store():
    return InMemoryOrderStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def id_generator():
    return SequentialOrderIdGenerator()
