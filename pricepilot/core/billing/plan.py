"""Deployment planning -- BillingModel -> RemoteOperationPlan.

Pure: no provider calls. The same model always yields the same plan.
Every amount in a plan is integer minor units.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pricepilot.core.models import (
    Aggregation,
    BillingItem,
    BillingModel,
    BillingKind,
    MeteredItem,
    ModelType,
    RecurringItem,
)
from pricepilot.core.money import round_half_away

APP_MARKER = "pricepilot"

# Stripe meters know sum, count and last.
METER_FORMULAS: Dict[Aggregation, str] = {
    Aggregation.SUM: "sum",
    Aggregation.MAX: "sum",
    Aggregation.LAST_DURING_PERIOD: "last",
    Aggregation.LAST_EVER: "last",
}


@dataclass
class ProductSpec:
    item_ref: str
    name: str
    description: str
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_stripe_params(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "metadata": dict(self.metadata)}

    def to_dict(self) -> Dict[str, Any]:
        return {"item_ref": self.item_ref, **self.to_stripe_params()}


@dataclass
class PriceSpec:
    item_ref: str
    currency: str
    billing_scheme: str = "per_unit"
    unit_amount: Optional[int] = None
    tiers: Optional[List[Dict[str, Union[int, str]]]] = None
    tiers_mode: Optional[str] = None
    recurring: Optional[Dict[str, str]] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def price_type(self) -> str:
        return self.metadata.get("price_type", "")

    def to_stripe_params(self, product_id: str = "") -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "currency": self.currency,
            "billing_scheme": self.billing_scheme,
            "metadata": dict(self.metadata),
        }
        if product_id:
            params["product"] = product_id
        if self.unit_amount is not None:
            params["unit_amount"] = self.unit_amount
        if self.tiers is not None:
            params["tiers"] = [dict(t) for t in self.tiers]
            params["tiers_mode"] = self.tiers_mode
        if self.recurring is not None:
            params["recurring"] = dict(self.recurring)
        return params

    def to_dict(self) -> Dict[str, Any]:
        return {"item_ref": self.item_ref, **self.to_stripe_params()}


@dataclass
class MeterSpec:
    item_ref: str
    display_name: str
    event_name: str
    aggregation: Aggregation = Aggregation.SUM

    def to_stripe_params(self) -> Dict[str, Any]:
        return {
            "display_name": self.display_name,
            "event_name": self.event_name,
            "formula": METER_FORMULAS[self.aggregation],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_ref": self.item_ref,
            "display_name": self.display_name,
            "event_name": self.event_name,
            "aggregation": self.aggregation.value,
        }


@dataclass
class RemoteOperationPlan:
    """Everything one deployment would create, grouped by operation."""

    model_id: str = ""
    products_to_create: List[ProductSpec] = field(default_factory=list)
    prices_to_create: List[PriceSpec] = field(default_factory=list)
    meters_to_create: List[MeterSpec] = field(default_factory=list)
    stale_objects_to_deactivate: List[str] = field(default_factory=list)
    skipped_meters: List[str] = field(default_factory=list)

    def item_refs(self) -> List[str]:
        """Item refs in deployment order, including refs that only have a price or meter."""
        seen: Dict[str, None] = {}
        for spec in [*self.products_to_create, *self.prices_to_create, *self.meters_to_create]:
            seen.setdefault(spec.item_ref, None)
        return list(seen)

    def product_for(self, item_ref: str) -> Optional[ProductSpec]:
        return next((p for p in self.products_to_create if p.item_ref == item_ref), None)

    def prices_for(self, item_ref: str) -> List[PriceSpec]:
        return [p for p in self.prices_to_create if p.item_ref == item_ref]

    def meters_for(self, item_ref: str) -> List[MeterSpec]:
        return [m for m in self.meters_to_create if m.item_ref == item_ref]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_id": self.model_id,
            "products_to_create": [p.to_dict() for p in self.products_to_create],
            "prices_to_create": [p.to_dict() for p in self.prices_to_create],
            "meters_to_create": [m.to_dict() for m in self.meters_to_create],
            "stale_objects_to_deactivate": list(self.stale_objects_to_deactivate),
            "skipped_meters": list(self.skipped_meters),
        }


# ── Price shapes ────────────────────────────────────────────────

def _metered_recurring(item: MeteredItem) -> Dict[str, str]:
    return {
        "interval": "month",
        "usage_type": "metered",
        "aggregate_usage": item.aggregation.value,
    }


def graduated_tiers(included_usage: int, overage_rate_per_unit: float) -> List[Dict[str, Union[int, str]]]:
    """Free band up to ``included_usage``, then the overage rate in minor units."""
    return [
        {"up_to": included_usage, "unit_amount": 0},
        {"up_to": "inf", "unit_amount": round_half_away(overage_rate_per_unit * 100)},
    ]


def price_for_item(model_type: ModelType, item: BillingItem) -> PriceSpec:
    """The single price an item deploys with under ``model_type``."""
    base = PriceSpec(item_ref=item.id, currency=item.currency)

    if model_type == ModelType.PER_SEAT:
        interval = item.interval if isinstance(item, RecurringItem) and item.interval else "month"
        base.unit_amount = item.price_minor_units
        base.recurring = {"interval": interval, "usage_type": "licensed"}
        base.metadata["price_type"] = "per_seat"
        return base

    if isinstance(item, RecurringItem):
        base.unit_amount = item.price_minor_units
        base.recurring = {"interval": item.interval}
        if model_type == ModelType.FIXED_FEE_OVERAGE:
            base.metadata["price_type"] = "base_plan"
        return base

    if isinstance(item, MeteredItem):
        base.recurring = _metered_recurring(item)
        if (
            model_type == ModelType.FIXED_FEE_OVERAGE
            and item.included_usage > 0
            and item.overage_rate_per_unit > 0
        ):
            base.billing_scheme = "tiered"
            base.tiers_mode = "graduated"
            base.tiers = graduated_tiers(item.included_usage, item.overage_rate_per_unit)
            base.metadata["price_type"] = "overage"
            base.metadata["included_usage"] = str(item.included_usage)
            return base
        base.unit_amount = item.price_minor_units
        return base

    base.unit_amount = item.price_minor_units
    return base


def product_for_item(model: BillingModel, item: BillingItem) -> ProductSpec:
    metadata = {
        "created_via": APP_MARKER,
        "billing_model_id": model.id,
        "billing_model_type": model.model_type.value,
        "item_ref": item.id,
    }
    if isinstance(item, MeteredItem):
        metadata["meter_name"] = item.event_name
    metadata.update(item.metadata)
    return ProductSpec(
        item_ref=item.id,
        name=item.product_name,
        description=item.description or f"{item.product_name} - {item.billing_kind.value} billing",
        metadata=metadata,
    )


# ── Main entry point ─────────────────────────────────────────────

def plan_deployment(
    model: BillingModel,
    existing_meter_events: Optional[Iterable[str]] = None,
) -> RemoteOperationPlan:
    """Derive the remote operations that deploy ``model``.

    Expects a validated model. One product and one price per item, in item
    order, plus one meter per metered item unless its event name is already
    in ``existing_meter_events``.
    """
    existing: Set[str] = set(existing_meter_events or ())
    plan = RemoteOperationPlan(model_id=model.id)

    for item in model.items:
        plan.products_to_create.append(product_for_item(model, item))
        plan.prices_to_create.append(price_for_item(model.model_type, item))
        if item.billing_kind == BillingKind.METERED and isinstance(item, MeteredItem):
            if item.event_name in existing:
                plan.skipped_meters.append(item.event_name)
                continue
            plan.meters_to_create.append(
                MeterSpec(
                    item_ref=item.id,
                    display_name=item.product_name,
                    event_name=item.event_name,
                    aggregation=item.aggregation,
                )
            )
    return plan
