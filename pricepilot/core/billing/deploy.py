"""Reconciler -- executes deployment plans and cleanup actions against Stripe.

Strictly sequential: for each item the product is created before its price,
the price before the default-price link, and that before the meter. Errors
are recorded per item and never escape execute()/execute_cleanup(). Only
validation, which runs before any remote call, aborts a deployment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pricepilot.core.billing.cleanup import (
    CleanupResult,
    DeactivationAction,
    RemoteProduct,
    plan_cleanup,
)
from pricepilot.core.billing.plan import RemoteOperationPlan, plan_deployment
from pricepilot.core.errors import CleanupSkip, PartialMeterFailure, RemoteCallError
from pricepilot.core.models import BillingModel
from pricepilot.core.validation import validate_model

logger = logging.getLogger("pricepilot.billing")


@dataclass
class ItemFailure:
    """One failed step of one item."""

    item_ref: str
    product_name: str
    stage: str  # product | price | default_price | meter
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "item_ref": self.item_ref,
            "product_name": self.product_name,
            "stage": self.stage,
            "message": self.message,
        }


@dataclass
class DeploymentResult:
    model_id: str = ""
    products_created: List[Dict[str, str]] = field(default_factory=list)
    prices_created: List[Dict[str, str]] = field(default_factory=list)
    meters_created: List[Dict[str, str]] = field(default_factory=list)
    errors: List[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "products_created": [dict(p) for p in self.products_created],
            "prices_created": [dict(p) for p in self.prices_created],
            "meters_created": [dict(m) for m in self.meters_created],
            "errors": [e.to_dict() for e in self.errors],
            "ok": self.ok,
        }


class Reconciler:
    """Drives a billing provider client through plans and cleanup actions.

    ``client`` is a StripeClient or MockStripeClient.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    # ── Deploy ──────────────────────────────────────────────────────

    def existing_meter_events(self) -> List[str]:
        """Event names of the provider's meters; empty when listing fails."""
        try:
            return [m["event_name"] for m in self._client.list_meters() if m.get("event_name")]
        except Exception as e:
            logger.warning("reconcile: could not list meters, creating all: %s", e)
            return []

    def plan(self, model: BillingModel) -> RemoteOperationPlan:
        """Validate ``model`` and plan it against the current meter inventory."""
        validated = validate_model(model)
        return plan_deployment(validated, self.existing_meter_events())

    def deploy(self, model: BillingModel) -> DeploymentResult:
        """Validate, plan and execute. Raises ValidationError before any remote call."""
        validated = validate_model(model)
        plan = plan_deployment(validated, self.existing_meter_events())
        logger.info(
            "reconcile: deploying model %s (%d items, %d meters)",
            validated.id, len(validated.items), len(plan.meters_to_create),
        )
        return self.execute(plan)

    def execute(self, plan: RemoteOperationPlan) -> DeploymentResult:
        result = DeploymentResult(model_id=plan.model_id)
        for item_ref in plan.item_refs():
            self._execute_item(plan, item_ref, result)
        logger.info(
            "reconcile: model %s done: %d products, %d prices, %d meters, %d errors",
            plan.model_id, len(result.products_created), len(result.prices_created),
            len(result.meters_created), len(result.errors),
        )
        return result

    def _execute_item(self, plan: RemoteOperationPlan, item_ref: str, result: DeploymentResult) -> None:
        product_spec = plan.product_for(item_ref)
        if product_spec is None:
            result.errors.append(
                ItemFailure(item_ref=item_ref, product_name="", stage="product", message="no product in plan")
            )
            return
        name = product_spec.name

        def fail(stage: str, err: Exception, cause: Optional[Exception] = None) -> None:
            # Provider errors are expected; anything else gets a traceback.
            logger.warning(
                "reconcile: item %s %s failed: %s", item_ref, stage, err,
                exc_info=not isinstance(cause or err, RemoteCallError),
            )
            result.errors.append(ItemFailure(item_ref=item_ref, product_name=name, stage=stage, message=str(err)))

        try:
            product = self._client.create_product(**product_spec.to_stripe_params())
        except Exception as e:
            fail("product", e)
            return
        product_id = product["id"]
        result.products_created.append({"item_ref": item_ref, "id": product_id, "name": name})
        logger.info("reconcile: item %s product %s", item_ref, product_id)

        price_ids: List[str] = []
        for price_spec in plan.prices_for(item_ref):
            try:
                price = self._client.create_price(**price_spec.to_stripe_params(product_id))
            except Exception as e:
                fail("price", e)
                return
            price_ids.append(price["id"])
            result.prices_created.append(
                {"item_ref": item_ref, "id": price["id"], "price_type": price_spec.price_type}
            )
            logger.info("reconcile: item %s price %s", item_ref, price["id"])

        if price_ids:
            try:
                self._client.set_default_price(product_id, price_ids[0])
            except Exception as e:
                # The product and price exist; only the link is missing.
                fail("default_price", e)

        for meter_spec in plan.meters_for(item_ref):
            try:
                meter = self._client.create_meter(**meter_spec.to_stripe_params())
            except Exception as e:
                partial = PartialMeterFailure(str(e), operation="create_meter", code=getattr(e, "code", None))
                fail("meter", partial, cause=e)
                continue
            result.meters_created.append(
                {"item_ref": item_ref, "id": meter["id"], "event_name": meter_spec.event_name}
            )
            logger.info("reconcile: item %s meter %s", item_ref, meter["id"])

    # ── Cleanup ─────────────────────────────────────────────────────

    def fetch_remote_products(self) -> List[RemoteProduct]:
        """Provider products with their prices. Raises RemoteCallError."""
        products = []
        for p in self._client.list_products():
            prices = self._client.list_prices(p["id"])
            products.append(RemoteProduct.from_stripe(p, prices))
        return products

    def plan_cleanup(self, products: Optional[Sequence[RemoteProduct]] = None) -> List[DeactivationAction]:
        if products is None:
            products = self.fetch_remote_products()
        return plan_cleanup(products)

    def execute_cleanup(self, actions: Sequence[DeactivationAction]) -> CleanupResult:
        result = CleanupResult()
        for action in actions:
            blocked = False
            for price_id in action.price_ids:
                try:
                    self._client.set_price_active(price_id, False)
                except CleanupSkip as e:
                    blocked = True
                    result.skipped.append({"ref": price_id, "reason": str(e)})
                    logger.info("cleanup: skipped price %s: %s", price_id, e)
                except Exception as e:
                    blocked = True
                    result.errors.append({"ref": price_id, "message": str(e)})
                    logger.warning(
                        "cleanup: price %s failed: %s", price_id, e,
                        exc_info=not isinstance(e, RemoteCallError),
                    )
                else:
                    result.deactivated.append(price_id)

            if blocked:
                result.skipped.append(
                    {"ref": action.product_id, "reason": "not all prices could be deactivated"}
                )
                continue

            try:
                self._client.set_product_active(action.product_id, False)
            except CleanupSkip as e:
                result.skipped.append({"ref": action.product_id, "reason": str(e)})
            except Exception as e:
                result.errors.append({"ref": action.product_id, "message": str(e)})
                logger.warning(
                    "cleanup: product %s failed: %s", action.product_id, e,
                    exc_info=not isinstance(e, RemoteCallError),
                )
            else:
                result.deactivated.append(action.product_id)
                logger.info(
                    "cleanup: deactivated %s (tier %s, kept %s)",
                    action.product_id, action.tier_id, action.kept_product_id,
                )
        return result
