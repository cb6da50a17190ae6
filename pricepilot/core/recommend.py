"""Billing model recommendation from price statistics and naming patterns.

A richer pass than classify(): looks at the spread of prices, the vocabulary
of product names and units, and whether the rows carry meter names, then
recommends one of the four model types together with per-row items tuned
for the billing provider.  Deterministic, no external calls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from pricepilot.core.models import BillingKind, ModelType
from pricepilot.core.money import parse_amount, to_minor_units
from pricepilot.core.validation import EVENT_NAME_MAX_LEN

USAGE_KEYWORDS = (
    "api", "call", "request", "transaction", "usage", "storage", "bandwidth",
    "processing", "compute", "cpu", "memory", "gb", "mb", "hour", "minute",
    "backup", "transfer", "network", "execution", "job", "query",
)
SUBSCRIPTION_KEYWORDS = ("plan", "subscription", "monthly", "yearly", "tier", "package")
USAGE_PRODUCT_PATTERNS = (
    "api", "call", "request", "storage", "bandwidth", "processing",
    "compute", "cpu", "memory", "backup", "transfer", "network",
    "execution", "job", "query", "transaction", "usage",
)
METERED_UNIT_HINTS = ("hour", "gb", "request", "call", "job", "day")

_EVENT_STRIP_RE = re.compile(r"[^a-z0-9\s]")
_WS_RE = re.compile(r"\s+")


@dataclass
class PriceStats:
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0
    variance: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"avg": self.avg, "min": self.min, "max": self.max, "variance": self.variance}


@dataclass
class Recommendation:
    model_type: ModelType
    confidence: int
    reasoning: str
    metering_strategy: str
    patterns: List[str] = field(default_factory=list)
    items: List[Dict[str, Any]] = field(default_factory=list)
    price_stats: PriceStats = field(default_factory=PriceStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_type": self.model_type.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "metering_strategy": self.metering_strategy,
            "patterns": list(self.patterns),
            "items": [dict(i) for i in self.items],
            "price_stats": self.price_stats.to_dict(),
        }


# ── Row accessors ────────────────────────────────────────────────

def _get(row: Dict[str, Any], *keys: str) -> Any:
    """First truthy value among exact ``keys``."""
    for key in keys:
        value = row.get(key)
        if value not in (None, ""):
            return value
    return None


def _price(row: Dict[str, Any]) -> float:
    return parse_amount(_get(row, "price", "amount", "Per Unit Rate (USD)", "unit_amount"))


def _product_name(row: Dict[str, Any]) -> Optional[str]:
    value = _get(row, "product", "name", "Metric Description")
    return str(value) if value is not None else None


def _unit(row: Dict[str, Any]) -> str:
    return str(_get(row, "Unit", "unit") or "")


def _meter_name(row: Dict[str, Any]) -> str:
    return str(_get(row, "Meter Name", "meter_name") or "")


def variance(numbers: Sequence[float]) -> float:
    """Population variance; 0.0 for an empty sequence."""
    if not numbers:
        return 0.0
    mean = sum(numbers) / len(numbers)
    return sum((n - mean) ** 2 for n in numbers) / len(numbers)


# ── Per-row heuristics ──────────────────────────────────────────

def detect_kind(row: Dict[str, Any], price: float, product_name: str) -> BillingKind:
    product = product_name.lower()
    declared = str(row.get("type") or "").lower()

    if "metered" in declared or "usage" in declared:
        return BillingKind.METERED
    if "recurring" in declared or "subscription" in declared:
        return BillingKind.RECURRING
    if _meter_name(row):
        return BillingKind.METERED

    unit = _unit(row).lower()
    if any(hint in unit for hint in METERED_UNIT_HINTS):
        return BillingKind.METERED
    if any(p in product for p in USAGE_PRODUCT_PATTERNS) or price < 1:
        return BillingKind.METERED
    if any(k in product for k in ("plan", "subscription", "monthly", "yearly")):
        return BillingKind.RECURRING
    return BillingKind.RECURRING if price >= 10 else BillingKind.METERED


def detect_interval(row: Dict[str, Any]) -> Optional[str]:
    interval = str(row.get("interval") or "").lower()
    desc = str(_get(row, "description", "Metric Description") or "").lower()
    if "month" in interval or "monthly" in desc:
        return "month"
    if "year" in interval or "yearly" in desc:
        return "year"
    if "week" in interval or "weekly" in desc:
        return "week"
    return None


def aggregation_for_unit(unit: str) -> str:
    unit = (unit or "").lower()
    if "max" in unit or "peak" in unit:
        return "max"
    if "last" in unit or "current" in unit:
        return "last_during_period"
    return "sum"


def pricing_tier(price: float) -> str:
    if price < 0.01:
        return "micro"
    if price < 1:
        return "small"
    if price < 10:
        return "medium"
    return "large"


def event_name_for(product_name: str) -> str:
    """Machine event name from a product label, at most 50 characters."""
    name = _EVENT_STRIP_RE.sub("", product_name.lower())
    name = _WS_RE.sub("_", name).strip("_")
    name = re.sub(r"_+", "_", name)
    return name[:EVENT_NAME_MAX_LEN]


# ── Main entry point ─────────────────────────────────────────────

def recommend(rows: Sequence[Dict[str, Any]]) -> Recommendation:
    """Recommend a billing model type and optimized items for ``rows``."""
    rows = [r for r in rows if isinstance(r, dict)]
    if not rows:
        return Recommendation(
            model_type=ModelType.PAY_AS_YOU_GO,
            confidence=0,
            reasoning="No data provided.",
            metering_strategy="usage-based",
            patterns=["No data provided"],
        )

    n = len(rows)
    prices = [_price(r) for r in rows]
    stats = PriceStats(
        avg=sum(prices) / n,
        min=min(prices),
        max=max(prices),
        variance=variance(prices),
    )

    products = [(_product_name(r) or "").lower() for r in rows]
    metered_hits = sum(1 for p in products if any(k in p for k in USAGE_KEYWORDS))
    subscription_hits = sum(1 for p in products if any(k in p for k in SUBSCRIPTION_KEYWORDS))

    units = [_unit(r).lower() for r in rows]
    time_units = sum(1 for u in units if any(k in u for k in ("hour", "day", "month", "minute")))
    volume_units = sum(1 for u in units if any(k in u for k in ("gb", "mb", "request", "call")))

    has_meter_names = any(_get(r, "Meter Name", "meter_name", "event_name") for r in rows)

    model_type = ModelType.PAY_AS_YOU_GO
    confidence = 70
    reasoning = "Default recommendation based on common patterns."
    strategy = "usage-based"
    patterns: List[str] = []

    if has_meter_names or metered_hits / n > 0.7:
        confidence = 95
        reasoning = (
            "Strong indicators of metered billing detected: meter names, "
            "usage-based terminology, and micro-pricing patterns."
        )
        strategy = "pure-usage-based"
        patterns += ["Meter names detected", "Usage-based terminology prevalent", "Micro-pricing structure"]
    elif subscription_hits / n > 0.6 and stats.avg > 10:
        if metered_hits > 0:
            model_type = ModelType.FIXED_FEE_OVERAGE
            confidence = 90
            reasoning = "Subscription plans with usage components: base fee plus overages."
            strategy = "base-plus-usage"
            patterns += ["Subscription plans detected", "Usage components present", "Hybrid pricing structure"]
        else:
            model_type = ModelType.FLAT_RECURRING
            confidence = 88
            reasoning = "Subscription products with fixed pricing: predictable recurring revenue."
            strategy = "subscription-only"
            patterns += ["Subscription plans dominant", "Fixed pricing structure", "Recurring revenue model"]
    elif stats.avg < 1 and stats.variance < 0.1:
        confidence = 92
        reasoning = "Micro-pricing with low variance suggests pure usage-based billing."
        strategy = "micro-usage"
        patterns += ["Micro-pricing detected", "Low price variance", "Usage-based pattern"]
    elif time_units / n > 0.5:
        confidence = 85
        reasoning = "Time-based units (hours, days) indicate resource consumption billing."
        strategy = "time-based-usage"
        patterns += ["Time-based units prevalent", "Resource consumption model"]

    if stats.min == 0 and stats.max > 0:
        patterns.append("Freemium pricing detected")
    if stats.variance > 1:
        patterns.append("High price variance - multiple tiers")
    if volume_units / n > 0.4:
        patterns.append("Volume-based billing components")

    items = []
    for index, (row, price) in enumerate(zip(rows, prices)):
        name = _product_name(row) or f"Service {index + 1}"
        meter_name = _meter_name(row)
        unit = _unit(row)
        kind = detect_kind(row, price, name)
        item: Dict[str, Any] = {
            "id": f"item_{index}",
            "product_name": name,
            "price_minor_units": to_minor_units(price),
            "currency": str(row.get("currency") or "usd").lower(),
            "billing_kind": kind.value,
            "description": str(
                _get(row, "description", "Metric Description") or f"{name} - optimized for Stripe"
            ),
            "metadata": {
                "ai_optimized": "true",
                "original_price": str(price),
                "confidence_score": str(confidence),
                "detected_patterns": ", ".join(patterns),
                "unit_type": unit or "units",
                "meter_name": meter_name,
                "billing_strategy": strategy,
            },
        }
        interval = detect_interval(row)
        if interval:
            item["interval"] = interval
        if kind == BillingKind.METERED:
            item["event_name"] = meter_name or event_name_for(name)
            item["aggregation"] = "sum"
            item["metadata"]["meter_aggregation"] = aggregation_for_unit(unit)
            item["metadata"]["pricing_tier"] = pricing_tier(price)
        elif kind == BillingKind.RECURRING and not interval:
            item["interval"] = "month"
        items.append(item)

    return Recommendation(
        model_type=model_type,
        confidence=confidence,
        reasoning=reasoning,
        metering_strategy=strategy,
        patterns=patterns,
        items=items,
        price_stats=stats,
    )
