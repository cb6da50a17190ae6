"""Seeded tier catalog for PricePilot's own pricing tiers.

All prices in cents (1/100 USD). Tiers are immutable frozen dataclasses.
catalog_model() turns a tier into a BillingModel whose items carry the
``tier_id`` metadata that duplicate cleanup groups by.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from pricepilot.core.models import (
    BillingItem,
    BillingModel,
    MeteredItem,
    ModelType,
    RecurringItem,
)


@dataclass(frozen=True)
class TierSpec:
    """Immutable tier definition."""

    id: str
    name: str
    description: str
    model_type: ModelType
    monthly_base_cents: int
    usage_limit_transactions: Optional[int] = None
    overage_rate: Optional[float] = None  # dollars per transaction


# ── Tier Catalog ────────────────────────────────────────────────

TRIAL = TierSpec(
    id="trial",
    name="Trial",
    description="Free trial with limited transactions",
    model_type=ModelType.FIXED_FEE_OVERAGE,
    monthly_base_cents=0,
    usage_limit_transactions=500,
    overage_rate=0.05,
)

STARTER = TierSpec(
    id="starter",
    name="Starter",
    description="Perfect for small businesses getting started",
    model_type=ModelType.FIXED_FEE_OVERAGE,
    monthly_base_cents=1_900,
    usage_limit_transactions=1_000,
    overage_rate=0.02,
)

PROFESSIONAL = TierSpec(
    id="professional",
    name="Professional",
    description="For growing businesses with higher volume",
    model_type=ModelType.FIXED_FEE_OVERAGE,
    monthly_base_cents=4_900,
    usage_limit_transactions=5_000,
    overage_rate=0.015,
)

BUSINESS = TierSpec(
    id="business",
    name="Business",
    description="Unlimited transactions for established businesses",
    model_type=ModelType.FLAT_RECURRING,
    monthly_base_cents=9_900,
)

ENTERPRISE = TierSpec(
    id="enterprise",
    name="Enterprise",
    description="Per-seat pricing for large teams",
    model_type=ModelType.PER_SEAT,
    monthly_base_cents=2_500,
)

TIERS: Dict[str, TierSpec] = {
    "trial": TRIAL,
    "starter": STARTER,
    "professional": PROFESSIONAL,
    "business": BUSINESS,
    "enterprise": ENTERPRISE,
}


def get_tier(tier_id: str) -> TierSpec:
    """Lookup a tier by ID (case-insensitive). Raises KeyError if not found."""
    return TIERS[tier_id.lower()]


def _tier_metadata(tier: TierSpec) -> Dict[str, str]:
    meta = {"tier_id": tier.id}
    if tier.usage_limit_transactions is not None:
        meta["usage_limit_transactions"] = str(tier.usage_limit_transactions)
    if tier.overage_rate is not None:
        meta["overage_rate"] = str(tier.overage_rate)
    return meta


def catalog_model(tier_id: str) -> BillingModel:
    """Build the BillingModel that deploys one catalog tier."""
    tier = get_tier(tier_id)
    meta = _tier_metadata(tier)
    items: List[BillingItem] = [
        RecurringItem(
            id=f"{tier.id}_base",
            product_name=f"PricePilot {tier.name}",
            description=tier.description,
            price_minor_units=tier.monthly_base_cents,
            interval="month",
            metadata=dict(meta),
        )
    ]
    if tier.overage_rate and tier.usage_limit_transactions:
        items.append(
            MeteredItem(
                id=f"{tier.id}_transactions",
                product_name=f"PricePilot {tier.name} Transactions",
                description=f"Transactions beyond the {tier.usage_limit_transactions} included",
                event_name=f"pricepilot_{tier.id}_transactions",
                included_usage=tier.usage_limit_transactions,
                overage_rate_per_unit=tier.overage_rate,
                metadata=dict(meta),
            )
        )
    return BillingModel(
        id=f"catalog_{tier.id}",
        name=f"PricePilot {tier.name}",
        description=tier.description,
        model_type=tier.model_type,
        items=items,
    )
