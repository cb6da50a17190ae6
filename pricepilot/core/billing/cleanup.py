"""Duplicate product cleanup planning.

Repeated deployments of the same tier leave several app-managed products
behind. plan_cleanup() picks one survivor per tier and role and lists everything
else for deactivation. Pure: the provider is only touched by the
Reconciler when the actions are executed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

# created_via markers written by this app and its predecessors.
APP_MARKERS = frozenset({"pricepilot", "billing_app_v1", "stripe_setup_pilot", "stripe_billing_pilot"})
APP_METADATA_KEYS = ("billing_model_type", "tier_id")


@dataclass
class RemotePrice:
    id: str
    active: bool = True
    interval: Optional[str] = None
    created: int = 0

    @property
    def is_monthly_recurring(self) -> bool:
        return self.interval == "month"

    @classmethod
    def from_stripe(cls, d: Dict[str, Any]) -> "RemotePrice":
        recurring = d.get("recurring") or {}
        return cls(
            id=d["id"],
            active=bool(d.get("active", True)),
            interval=recurring.get("interval"),
            created=int(d.get("created") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "active": self.active, "interval": self.interval, "created": self.created}


@dataclass
class RemoteProduct:
    id: str
    name: str = ""
    active: bool = True
    created: int = 0
    metadata: Dict[str, str] = field(default_factory=dict)
    prices: List[RemotePrice] = field(default_factory=list)

    @property
    def tier_id(self) -> str:
        return self.metadata.get("tier_id", "")

    @property
    def role(self) -> str:
        """Which item of its tier this product carries; empty for older deploys."""
        return self.metadata.get("item_ref", "")

    @property
    def is_app_managed(self) -> bool:
        if self.metadata.get("created_via") in APP_MARKERS:
            return True
        return any(key in self.metadata for key in APP_METADATA_KEYS)

    @property
    def active_prices(self) -> List[RemotePrice]:
        return [p for p in self.prices if p.active]

    @property
    def has_active_monthly_price(self) -> bool:
        return any(p.is_monthly_recurring for p in self.active_prices)

    @classmethod
    def from_stripe(cls, d: Dict[str, Any], prices: Sequence[Dict[str, Any]] = ()) -> "RemoteProduct":
        return cls(
            id=d["id"],
            name=d.get("name") or "",
            active=bool(d.get("active", True)),
            created=int(d.get("created") or 0),
            metadata={str(k): str(v) for k, v in (d.get("metadata") or {}).items()},
            prices=[RemotePrice.from_stripe(p) for p in prices],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "active": self.active,
            "created": self.created,
            "metadata": dict(self.metadata),
            "prices": [p.to_dict() for p in self.prices],
        }


@dataclass
class DeactivationAction:
    """Deactivate ``price_ids`` first, then ``product_id``."""

    product_id: str
    product_name: str
    tier_id: str
    kept_product_id: str
    price_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "tier_id": self.tier_id,
            "kept_product_id": self.kept_product_id,
            "price_ids": list(self.price_ids),
        }


@dataclass
class CleanupResult:
    deactivated: List[str] = field(default_factory=list)
    skipped: List[Dict[str, str]] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deactivated": list(self.deactivated),
            "skipped": [dict(s) for s in self.skipped],
            "errors": [dict(e) for e in self.errors],
            "ok": self.ok,
        }


def choose_survivor(group: Sequence[RemoteProduct]) -> RemoteProduct:
    """Newest product with an active monthly price, else the newest product."""
    newest_first = sorted(group, key=lambda p: p.created, reverse=True)
    for product in newest_first:
        if product.has_active_monthly_price:
            return product
    return newest_first[0]


def plan_cleanup(existing_products: Sequence[RemoteProduct]) -> List[DeactivationAction]:
    """Deactivation actions for duplicate app-managed products.

    Products are grouped by tier and role, so the base plan and the usage
    product of one tier deploy never count as duplicates of each other.
    """
    groups: Dict[Tuple[str, str], List[RemoteProduct]] = {}
    for product in existing_products:
        if not (product.active and product.is_app_managed and product.tier_id):
            continue
        groups.setdefault((product.tier_id, product.role), []).append(product)

    actions: List[DeactivationAction] = []
    for tier_id, role in sorted(groups):
        group = groups[(tier_id, role)]
        if len(group) < 2:
            continue
        keep = choose_survivor(group)
        for product in sorted(group, key=lambda p: p.created, reverse=True):
            if product.id == keep.id:
                continue
            actions.append(
                DeactivationAction(
                    product_id=product.id,
                    product_name=product.name,
                    tier_id=tier_id,
                    kept_product_id=keep.id,
                    price_ids=[p.id for p in product.active_prices],
                )
            )
    return actions
