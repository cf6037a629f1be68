"""
Unit tests for the Stripe provider client.

The SDK calls are patched; these tests cover argument passing, plain-dict
conversion and error translation.
"""

import json
from unittest.mock import patch

import pytest
import stripe

from core.exceptions import ProviderError, ProviderTransientError, SignatureVerificationError
from core.provider_client import StripeProviderClient
from models.checkout import ProviderSessionRequest, SessionLineItem


class SdkObject(dict):
    """Stands in for a StripeObject: attribute access and JSON str()."""

    def __getattr__(self, name):
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name)

    def __str__(self):
        return json.dumps(self)


class SdkList(SdkObject):
    def auto_paging_iter(self):
        return iter(self["data"])


# Fixtures

@pytest.fixture
def client():
    return StripeProviderClient("sk_test_dummy", timeout_seconds=5.0)


class TestConstruction:
    """Client setup."""

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            StripeProviderClient("")

    def test_disables_sdk_retries(self, client):
        assert stripe.max_network_retries == 0


class TestReads:
    """Product, price and session lookups."""

    def test_get_product_returns_plain_dict(self, client):
        with patch("stripe.Product.retrieve") as retrieve:
            retrieve.return_value = SdkObject(id="prod_1", name="Black Ring", default_price="price_1")

            product = client.get_product("prod_1")

        retrieve.assert_called_once_with("prod_1", api_key="sk_test_dummy")
        assert product == {"id": "prod_1", "name": "Black Ring", "default_price": "price_1"}
        assert type(product) is dict

    def test_get_price(self, client):
        with patch("stripe.Price.retrieve") as retrieve:
            retrieve.return_value = SdkObject(id="price_1", unit_amount=8000, active=True)

            price = client.get_price("price_1")

        assert price["unit_amount"] == 8000

    def test_list_active_products_expands_default_price(self, client):
        with patch("stripe.Product.list") as list_products:
            list_products.return_value = SdkList(data=[
                SdkObject(id="prod_1", default_price={"id": "price_1"}),
                SdkObject(id="prod_2", default_price={"id": "price_2"}),
            ])

            products = client.list_active_products()

        kwargs = list_products.call_args.kwargs
        assert kwargs["active"] is True
        assert kwargs["expand"] == ["data.default_price"]
        assert [p["id"] for p in products] == ["prod_1", "prod_2"]

    def test_get_session_passes_expand(self, client):
        with patch("stripe.checkout.Session.retrieve") as retrieve:
            retrieve.return_value = SdkObject(id="cs_1", payment_status="paid")

            session = client.get_session("cs_1", expand=("line_items", "customer"))

        retrieve.assert_called_once_with(
            "cs_1", expand=["line_items", "customer"], api_key="sk_test_dummy"
        )
        assert session["payment_status"] == "paid"

    def test_list_line_items(self, client):
        with patch("stripe.checkout.Session.list_line_items") as list_items:
            list_items.return_value = SdkObject(data=[SdkObject(id="li_1", quantity=2)])

            items = client.list_line_items("cs_1")

        assert items == [{"id": "li_1", "quantity": 2}]

    def test_list_sessions_caps_page_size(self, client):
        with patch("stripe.checkout.Session.list") as list_sessions:
            list_sessions.return_value = SdkList(data=[SdkObject(id="cs_1", payment_status="paid")])

            sessions = client.list_sessions(limit=500)

        assert sessions == [{"id": "cs_1", "payment_status": "paid"}]
        assert list_sessions.call_args.kwargs["limit"] == 100


class TestCreateSession:
    """Session creation."""

    def test_submits_request_params(self, client):
        request = ProviderSessionRequest(
            line_items=(SessionLineItem("Black Ring", "Black", 8000, 1, "usd"),),
            customer_email="jane@example.com",
            success_url="https://shop/success",
            cancel_url="https://shop/cancel",
        )

        with patch("stripe.checkout.Session.create") as create:
            create.return_value = SdkObject(id="cs_1", url="https://checkout/cs_1")

            session = client.create_session(request)

        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test_dummy"
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 8000
        assert session == {"id": "cs_1", "url": "https://checkout/cs_1"}


class TestErrorTranslation:
    """SDK errors become provider errors at the boundary."""

    @pytest.mark.parametrize("error", [
        stripe.APIConnectionError("connection reset"),
        stripe.RateLimitError("too many requests"),
        stripe.APIError("internal error"),
    ])
    def test_transient_errors(self, client, error):
        with patch("stripe.Product.retrieve", side_effect=error):
            with pytest.raises(ProviderTransientError) as exc_info:
                client.get_product("prod_1")

        assert exc_info.value.operation == "get_product"

    def test_invalid_request_is_not_transient(self, client):
        error = stripe.InvalidRequestError("No such product: prod_x", "id")

        with patch("stripe.Product.retrieve", side_effect=error):
            with pytest.raises(ProviderError) as exc_info:
                client.get_product("prod_x")

        assert not isinstance(exc_info.value, ProviderTransientError)

    def test_authentication_error_is_not_transient(self, client):
        with patch("stripe.Price.retrieve", side_effect=stripe.AuthenticationError("bad key")):
            with pytest.raises(ProviderError) as exc_info:
                client.get_price("price_1")

        assert not isinstance(exc_info.value, ProviderTransientError)


class TestWebhookVerification:
    """verify_event_signature()."""

    def test_valid_signature_returns_event(self, client):
        event = SdkObject(id="evt_1", type="product.updated", data={"object": {"id": "prod_1"}})

        with patch("stripe.Webhook.construct_event", return_value=event) as construct:
            result = client.verify_event_signature(b"{}", "t=1,v1=abc", "whsec_test")

        construct.assert_called_once_with(b"{}", "t=1,v1=abc", "whsec_test")
        assert result["type"] == "product.updated"

    def test_bad_signature(self, client):
        error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=abc")

        with patch("stripe.Webhook.construct_event", side_effect=error):
            with pytest.raises(SignatureVerificationError):
                client.verify_event_signature(b"{}", "t=1,v1=abc", "whsec_test")

    def test_unparseable_payload(self, client):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json")):
            with pytest.raises(SignatureVerificationError) as exc_info:
                client.verify_event_signature(b"not json", "t=1,v1=abc", "whsec_test")

        assert exc_info.value.message == "Invalid webhook payload"
