"""Stripe integration layer -- thin wrapper around the stripe SDK.

Design principles:
  - All Stripe calls go through StripeClient (mockable in tests)
  - Config loaded from env vars
  - Every SDK error surfaces as RemoteCallError; a refused default-price
    deactivation surfaces as CleanupSkip
  - Amounts cross this boundary as integer minor units
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pricepilot.core.errors import CleanupSkip, RemoteCallError

logger = logging.getLogger("pricepilot.billing")

# Meter event payload keys. Usage events must carry these fields.
CUSTOMER_PAYLOAD_KEY = "stripe_customer_id"
VALUE_PAYLOAD_KEY = "value"


@dataclass(frozen=True)
class StripeConfig:
    """Stripe configuration from environment."""

    enabled: bool = False
    secret_key: str = ""
    api_version: str = ""

    @classmethod
    def from_env(cls) -> "StripeConfig":
        from pricepilot.core.api.settings import _bool_env

        return cls(
            enabled=_bool_env("PRICEPILOT_STRIPE_ENABLED", False),
            secret_key=os.environ.get("STRIPE_SECRET_KEY", ""),
            api_version=os.environ.get("STRIPE_API_VERSION", ""),
        )

    def validate(self) -> Optional[str]:
        """Return error message if config is incomplete, else None."""
        if not self.enabled:
            return "Stripe is disabled (set PRICEPILOT_STRIPE_ENABLED=1)"
        if not self.secret_key:
            return "Stripe enabled but missing env vars: STRIPE_SECRET_KEY"
        return None

    def __repr__(self) -> str:
        return (
            f"StripeConfig(enabled={self.enabled}, "
            f"secret_key={'***' if self.secret_key else ''!r}, "
            f"api_version={self.api_version!r})"
        )


def _is_default_price_refusal(message: str) -> bool:
    return "default price" in (message or "").lower()


def _plain(obj: Any) -> Dict[str, Any]:
    """StripeObject -> plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeClient:
    """Thin wrapper around stripe SDK. Mockable for testing.

    In production, set PRICEPILOT_STRIPE_ENABLED=1 and STRIPE_SECRET_KEY.
    In tests, use MockStripeClient instead.
    """

    def __init__(self, config: StripeConfig) -> None:
        import stripe

        self._config = config
        self._stripe = stripe
        stripe.api_key = config.secret_key
        if config.api_version:
            stripe.api_version = config.api_version

    def _call(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except self._stripe.StripeError as e:
            message = getattr(e, "user_message", None) or str(e)
            code = getattr(e, "code", None)
            logger.info("stripe: %s failed: %s", operation, message)
            raise RemoteCallError(
                f"{operation} failed: {message}", operation=operation, code=code
            ) from e

    # ── Create ──────────────────────────────────────────────────────

    def create_product(
        self,
        *,
        name: str,
        description: str = "",
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"name": name, "metadata": metadata or {}}
        if description:
            params["description"] = description
        product = self._call("create_product", self._stripe.Product.create, **params)
        return {"id": product.id, "name": product.name}

    def create_price(self, **params: Any) -> Dict[str, Any]:
        """Create a price from PriceSpec.to_stripe_params() output."""
        price = self._call("create_price", self._stripe.Price.create, **params)
        return {"id": price.id, "product": price.product}

    def create_meter(
        self,
        *,
        display_name: str,
        event_name: str,
        formula: str = "sum",
    ) -> Dict[str, Any]:
        meter = self._call(
            "create_meter",
            self._stripe.billing.Meter.create,
            display_name=display_name,
            event_name=event_name,
            default_aggregation={"formula": formula},
            customer_mapping={"event_payload_key": CUSTOMER_PAYLOAD_KEY, "type": "by_id"},
            value_settings={"event_payload_key": VALUE_PAYLOAD_KEY},
        )
        return {"id": meter.id, "event_name": meter.event_name}

    # ── List ────────────────────────────────────────────────────────

    def list_products(self) -> List[Dict[str, Any]]:
        page = self._call("list_products", self._stripe.Product.list, limit=100)
        return [_plain(p) for p in page.auto_paging_iter()]

    def list_prices(self, product_id: str) -> List[Dict[str, Any]]:
        page = self._call("list_prices", self._stripe.Price.list, product=product_id, limit=100)
        return [_plain(p) for p in page.auto_paging_iter()]

    def list_meters(self) -> List[Dict[str, Any]]:
        page = self._call("list_meters", self._stripe.billing.Meter.list, limit=100)
        return [_plain(m) for m in page.auto_paging_iter()]

    # ── Update ──────────────────────────────────────────────────────

    def set_default_price(self, product_id: str, price_id: str) -> None:
        self._call(
            "set_default_price", self._stripe.Product.modify, product_id, default_price=price_id
        )

    def set_price_active(self, price_id: str, active: bool) -> None:
        try:
            self._call("set_price_active", self._stripe.Price.modify, price_id, active=active)
        except RemoteCallError as e:
            if not active and _is_default_price_refusal(str(e)):
                raise CleanupSkip(str(e), ref=price_id) from e
            raise

    def set_product_active(self, product_id: str, active: bool) -> None:
        self._call("set_product_active", self._stripe.Product.modify, product_id, active=active)


class MockStripeClient:
    """In-memory Stripe stand-in for tests, dry runs and ``--mock``.

    ``fail_on`` maps an operation name (``create_product``, ``create_price``,
    ``create_meter``, ``set_price_active``, ...) to a substring; a call whose
    name, event name or id contains it raises RemoteCallError.  ``"*"``
    fails every call of that operation.
    """

    def __init__(
        self,
        config: Optional[StripeConfig] = None,
        *,
        fail_on: Optional[Dict[str, str]] = None,
    ) -> None:
        self._config = config
        self.fail_on: Dict[str, str] = dict(fail_on or {})
        self.products: Dict[str, Dict[str, Any]] = {}
        self.prices: Dict[str, Dict[str, Any]] = {}
        self.meters: Dict[str, Dict[str, Any]] = {}
        self.calls: List[str] = []
        self._product_counter = 0
        self._price_counter = 0
        self._meter_counter = 0
        self._clock = 1_700_000_000

    def _tick(self) -> int:
        self._clock += 1
        return self._clock

    def _check(self, operation: str, subject: str) -> None:
        self.calls.append(operation)
        needle = self.fail_on.get(operation)
        if needle is not None and (needle == "*" or needle in subject):
            raise RemoteCallError(f"{operation} failed: injected failure for {subject!r}", operation=operation)

    # ── Seeding (tests) ─────────────────────────────────────────────

    def add_product(
        self,
        *,
        name: str,
        metadata: Optional[Dict[str, str]] = None,
        created: Optional[int] = None,
        active: bool = True,
    ) -> str:
        self._product_counter += 1
        pid = f"prod_mock_{self._product_counter:04d}"
        self.products[pid] = {
            "id": pid,
            "name": name,
            "description": "",
            "active": active,
            "created": created if created is not None else self._tick(),
            "metadata": dict(metadata or {}),
            "default_price": None,
        }
        return pid

    def add_price(
        self,
        product_id: str,
        *,
        unit_amount: int = 0,
        interval: Optional[str] = None,
        active: bool = True,
        default: bool = False,
    ) -> str:
        self._price_counter += 1
        price_id = f"price_mock_{self._price_counter:04d}"
        self.prices[price_id] = {
            "id": price_id,
            "product": product_id,
            "active": active,
            "currency": "usd",
            "unit_amount": unit_amount,
            "recurring": {"interval": interval} if interval else None,
            "created": self._tick(),
        }
        if default:
            self.products[product_id]["default_price"] = price_id
        return price_id

    # ── Create ──────────────────────────────────────────────────────

    def create_product(
        self,
        *,
        name: str,
        description: str = "",
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        self._check("create_product", name)
        pid = self.add_product(name=name, metadata=metadata)
        self.products[pid]["description"] = description
        return {"id": pid, "name": name}

    def create_price(self, **params: Any) -> Dict[str, Any]:
        product_id = params.get("product", "")
        self._check("create_price", product_id)
        if product_id not in self.products:
            raise RemoteCallError(f"create_price failed: no such product: {product_id}", operation="create_price")
        self._price_counter += 1
        price_id = f"price_mock_{self._price_counter:04d}"
        self.prices[price_id] = {
            "id": price_id,
            "active": True,
            "created": self._tick(),
            **params,
        }
        return {"id": price_id, "product": product_id}

    def create_meter(
        self,
        *,
        display_name: str,
        event_name: str,
        formula: str = "sum",
    ) -> Dict[str, Any]:
        self._check("create_meter", event_name)
        if any(m["event_name"] == event_name for m in self.meters.values()):
            raise RemoteCallError(
                f"create_meter failed: a meter with event_name {event_name!r} already exists",
                operation="create_meter",
                code="resource_already_exists",
            )
        self._meter_counter += 1
        meter_id = f"mtr_mock_{self._meter_counter:04d}"
        self.meters[meter_id] = {
            "id": meter_id,
            "display_name": display_name,
            "event_name": event_name,
            "default_aggregation": {"formula": formula},
            "status": "active",
        }
        return {"id": meter_id, "event_name": event_name}

    # ── List ────────────────────────────────────────────────────────

    def list_products(self) -> List[Dict[str, Any]]:
        self._check("list_products", "")
        return [dict(p) for p in self.products.values()]

    def list_prices(self, product_id: str) -> List[Dict[str, Any]]:
        self._check("list_prices", product_id)
        return [dict(p) for p in self.prices.values() if p.get("product") == product_id]

    def list_meters(self) -> List[Dict[str, Any]]:
        self._check("list_meters", "")
        return [dict(m) for m in self.meters.values()]

    # ── Update ──────────────────────────────────────────────────────

    def set_default_price(self, product_id: str, price_id: str) -> None:
        self._check("set_default_price", product_id)
        self.products[product_id]["default_price"] = price_id

    def set_price_active(self, price_id: str, active: bool) -> None:
        self._check("set_price_active", price_id)
        price = self.prices[price_id]
        product = self.products.get(price.get("product", ""))
        if not active and product and product.get("default_price") == price_id:
            raise CleanupSkip(
                f"price {price_id} is the default price of product {product['id']}", ref=price_id
            )
        price["active"] = active

    def set_product_active(self, product_id: str, active: bool) -> None:
        self._check("set_product_active", product_id)
        self.products[product_id]["active"] = active


def create_stripe_client(
    config: Optional[StripeConfig] = None,
    *,
    use_mock: bool = False,
) -> Any:
    """Real client when Stripe is configured, else raise ConfigError.

    ``use_mock`` short-circuits to MockStripeClient.
    """
    from pricepilot.core.errors import ConfigError

    cfg = config or StripeConfig.from_env()
    if use_mock:
        return MockStripeClient(cfg)
    err = cfg.validate()
    if err:
        raise ConfigError(err)
    return StripeClient(cfg)
