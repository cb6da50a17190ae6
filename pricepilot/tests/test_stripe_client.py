"""Tests for the Stripe client wrapper, its config and the mock provider."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
import stripe

from pricepilot.core.billing.stripe import (
    MockStripeClient,
    StripeClient,
    StripeConfig,
    create_stripe_client,
)
from pricepilot.core.errors import CleanupSkip, ConfigError, RemoteCallError


def _live_client(monkeypatch) -> StripeClient:
    # StripeClient sets module globals; restore them after the test.
    monkeypatch.setattr(stripe, "api_key", stripe.api_key)
    monkeypatch.setattr(stripe, "api_version", stripe.api_version)
    return StripeClient(StripeConfig(enabled=True, secret_key="sk_test_123"))


class _Page:
    def __init__(self, items):
        self._items = items

    def auto_paging_iter(self):
        return iter(self._items)


# ── Config ──────────────────────────────────────────────────────


class TestStripeConfig:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PRICEPILOT_STRIPE_ENABLED", "1")
        monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_abc")
        monkeypatch.setenv("STRIPE_API_VERSION", "2024-06-20")
        cfg = StripeConfig.from_env()
        assert cfg.enabled
        assert cfg.secret_key == "sk_test_abc"
        assert cfg.api_version == "2024-06-20"
        assert cfg.validate() is None

    def test_disabled(self):
        assert "disabled" in StripeConfig().validate()

    def test_missing_key(self):
        assert "STRIPE_SECRET_KEY" in StripeConfig(enabled=True).validate()

    def test_repr_masks_key(self):
        assert "sk_test_abc" not in repr(StripeConfig(enabled=True, secret_key="sk_test_abc"))


class TestFactory:
    def test_mock(self):
        assert isinstance(create_stripe_client(StripeConfig(), use_mock=True), MockStripeClient)

    def test_disabled_raises(self):
        with pytest.raises(ConfigError, match="disabled"):
            create_stripe_client(StripeConfig())

    def test_live(self, monkeypatch):
        monkeypatch.setattr(stripe, "api_key", stripe.api_key)
        client = create_stripe_client(StripeConfig(enabled=True, secret_key="sk_test_123"))
        assert isinstance(client, StripeClient)
        assert stripe.api_key == "sk_test_123"


# ── Live client (SDK patched) ───────────────────────────────────


class TestStripeClient:
    def test_create_product(self, monkeypatch):
        client = _live_client(monkeypatch)
        seen = {}

        def fake_create(**params):
            seen.update(params)
            return SimpleNamespace(id="prod_1", name=params["name"])

        monkeypatch.setattr(stripe.Product, "create", fake_create)
        out = client.create_product(name="API", description="", metadata={"tier_id": "x"})
        assert out == {"id": "prod_1", "name": "API"}
        assert "description" not in seen
        assert seen["metadata"] == {"tier_id": "x"}

    def test_create_meter_params(self, monkeypatch):
        client = _live_client(monkeypatch)
        seen = {}

        def fake_create(**params):
            seen.update(params)
            return SimpleNamespace(id="mtr_1", event_name=params["event_name"])

        monkeypatch.setattr(stripe.billing.Meter, "create", fake_create)
        client.create_meter(display_name="API", event_name="api_calls", formula="last")
        assert seen["default_aggregation"] == {"formula": "last"}
        assert seen["customer_mapping"] == {"event_payload_key": "stripe_customer_id", "type": "by_id"}
        assert seen["value_settings"] == {"event_payload_key": "value"}

    def test_sdk_error_wrapped(self, monkeypatch):
        client = _live_client(monkeypatch)

        def fake_create(**params):
            raise stripe.InvalidRequestError("No such product", None, code="resource_missing")

        monkeypatch.setattr(stripe.Price, "create", fake_create)
        with pytest.raises(RemoteCallError) as exc:
            client.create_price(product="prod_x", currency="usd", unit_amount=1)
        assert exc.value.operation == "create_price"
        assert exc.value.code == "resource_missing"
        assert "No such product" in str(exc.value)

    def test_default_price_refusal_is_skip(self, monkeypatch):
        client = _live_client(monkeypatch)

        def fake_modify(price_id, **params):
            raise stripe.InvalidRequestError(
                "This price cannot be archived because it is the default price of its product.", None
            )

        monkeypatch.setattr(stripe.Price, "modify", fake_modify)
        with pytest.raises(CleanupSkip) as exc:
            client.set_price_active("price_1", False)
        assert exc.value.ref == "price_1"

    def test_list_meters(self, monkeypatch):
        client = _live_client(monkeypatch)
        monkeypatch.setattr(
            stripe.billing.Meter, "list",
            lambda **params: _Page([{"id": "mtr_1", "event_name": "api_calls"}]),
        )
        assert client.list_meters() == [{"id": "mtr_1", "event_name": "api_calls"}]


# ── Mock provider ───────────────────────────────────────────────


class TestMockStripeClient:
    def test_ids_and_state(self):
        mock = MockStripeClient()
        product = mock.create_product(name="API", metadata={"a": "b"})
        price = mock.create_price(product=product["id"], currency="usd", unit_amount=5)
        assert product["id"] == "prod_mock_0001"
        assert price["id"] == "price_mock_0001"
        assert mock.list_prices(product["id"])[0]["unit_amount"] == 5

    def test_price_for_unknown_product(self):
        with pytest.raises(RemoteCallError):
            MockStripeClient().create_price(product="prod_nope", currency="usd")

    def test_duplicate_meter(self):
        mock = MockStripeClient()
        mock.create_meter(display_name="A", event_name="a")
        with pytest.raises(RemoteCallError) as exc:
            mock.create_meter(display_name="A", event_name="a")
        assert exc.value.code == "resource_already_exists"

    def test_fail_on_substring(self):
        mock = MockStripeClient(fail_on={"create_product": "Storage"})
        mock.create_product(name="API")
        with pytest.raises(RemoteCallError, match="injected failure"):
            mock.create_product(name="Cold Storage")

    def test_default_price_cannot_be_archived(self):
        mock = MockStripeClient()
        pid = mock.add_product(name="Pro")
        price_id = mock.add_price(pid, unit_amount=4900, interval="month", default=True)
        with pytest.raises(CleanupSkip):
            mock.set_price_active(price_id, False)
        assert mock.prices[price_id]["active"] is True

    def test_calls_recorded(self):
        mock = MockStripeClient()
        mock.list_meters()
        mock.list_products()
        assert mock.calls == ["list_meters", "list_products"]
