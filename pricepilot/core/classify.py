"""Billing data classification engine for PricePilot.

Heuristic-only, deterministic, local.  No model calls, no external APIs.

Detects:
  - Structure: metered_services, subscription_plans, mixed, unknown
  - Confidence (0-100) and a suggested billing model type
  - Provisional billing items normalized from loosely named columns

classify() never raises: malformed numbers become 0 and missing text fields
become placeholders.  The user completes the provisional items in the form.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pricepilot.core.models import BillingKind, ModelType
from pricepilot.core.money import parse_amount, to_minor_units

STRUCTURES = ("metered_services", "subscription_plans", "mixed", "unknown")
FORMATS = ("csv", "json", "xml", "text")

METERED_INDICATORS: Tuple[str, ...] = (
    "meter", "metric", "unit", "rate", "usage", "consumption",
    "per unit", "flat fee", "event", "api", "storage", "bandwidth",
    "cpu", "memory", "network", "backup", "processing", "compute",
)

SUBSCRIPTION_INDICATORS: Tuple[str, ...] = (
    "plan", "subscription", "monthly", "yearly", "tier", "package",
    "recurring", "interval",
)

_NUMBER_RE = re.compile(r"\$?(\d+\.?\d*)")
_SLUG_RE = re.compile(r"[^a-z0-9]")

# Column probes, in priority order.
NAME_FIELDS = ("name", "product", "metric description", "description", "service", "title")
DESCRIPTION_FIELDS = ("description", "metric description", "details", "notes")
PRICE_FIELDS = ("rate", "price", "cost", "per unit rate", "unit amount", "amount", "fee")
EVENT_FIELDS = ("meter name", "event name", "meter", "event")
UNIT_FIELDS = ("unit", "units", "unit label")
INTERVAL_FIELDS = ("interval", "billing cycle", "period")

DEFAULT_DESCRIPTION = "AI-parsed service"


@dataclass(frozen=True)
class ClassifierConfig:
    """Tunable thresholds and weights for the structure heuristic."""

    dominant_threshold: float = 0.3
    mixed_threshold: float = 0.1
    price_signal_weight: int = 10
    keyword_signal_weight: int = 5
    micro_price_ceiling: float = 1.0
    plan_price_floor: float = 10.0
    metered_confidence_cap: int = 90
    subscription_confidence_cap: int = 85
    mixed_confidence: int = 75


DEFAULT_CONFIG = ClassifierConfig()


@dataclass
class ProvisionalItem:
    """A BillingItem-shaped record guessed from one row. May be incomplete."""

    id: str
    product_name: str
    description: str
    billing_kind: BillingKind
    price: float
    price_minor_units: int
    currency: str = "usd"
    interval: Optional[str] = None
    event_name: Optional[str] = None
    unit: Optional[str] = None
    billing_scheme: Optional[str] = None
    usage_type: Optional[str] = None
    aggregation: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "product_name": self.product_name,
            "description": self.description,
            "billing_kind": self.billing_kind.value,
            "price": self.price,
            "price_minor_units": self.price_minor_units,
            "currency": self.currency,
            "metadata": dict(self.metadata),
        }
        for key in ("interval", "event_name", "unit", "billing_scheme", "usage_type", "aggregation"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        return d


@dataclass
class ClassificationResult:
    structure: str
    confidence: int
    items: List[ProvisionalItem]
    suggested_model_type: ModelType
    detected_columns: List[str] = field(default_factory=list)
    patterns: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "structure": self.structure,
            "confidence": self.confidence,
            "items": [item.to_dict() for item in self.items],
            "suggested_model_type": self.suggested_model_type.value,
            "detected_columns": list(self.detected_columns),
            "patterns": list(self.patterns),
        }


# ── Field lookup ────────────────────────────────────────────────

def find_field_value(row: Dict[str, Any], field_name: str) -> Any:
    """Value of the first column whose lowercase name contains ``field_name``."""
    needle = field_name.lower()
    for key in row.keys():
        if needle in str(key).lower():
            return row[key]
    return None


def _first_text(row: Dict[str, Any], fields: Sequence[str]) -> Optional[str]:
    for name in fields:
        value = find_field_value(row, name)
        if value is not None and str(value).strip():
            return str(value)
    return None


def slugify(text: str) -> str:
    return _SLUG_RE.sub("_", text.lower())


# ── Scoring ─────────────────────────────────────────────────────

def column_score(column_text: str, indicators: Sequence[str]) -> float:
    """Fraction of ``indicators`` present as substrings of ``column_text``."""
    matches = sum(1 for indicator in indicators if indicator in column_text)
    return matches / len(indicators) if matches else 0.0


def _row_text(row: Dict[str, Any]) -> str:
    parts = []
    for value in row.values():
        if value is None:
            continue
        if isinstance(value, (dict, list)):
            parts.append(json.dumps(value, sort_keys=True, default=str))
        else:
            parts.append(str(value))
    return " ".join(parts).lower()


def content_scores(rows: Sequence[Dict[str, Any]], config: ClassifierConfig = DEFAULT_CONFIG) -> Tuple[int, int]:
    """Return (metered, subscription) points from row values."""
    metered = 0
    subscription = 0
    for row in rows:
        text = _row_text(row)
        numbers = [float(m) for m in _NUMBER_RE.findall(text)]
        if numbers:
            avg = sum(numbers) / len(numbers)
            if avg < config.micro_price_ceiling:
                metered += config.price_signal_weight
            if avg > config.plan_price_floor:
                subscription += config.price_signal_weight
        if "hour" in text or "gb" in text or "request" in text:
            metered += config.keyword_signal_weight
        if "month" in text or "year" in text or "plan" in text:
            subscription += config.keyword_signal_weight
    return metered, subscription


def _detect_patterns(columns: Sequence[str]) -> List[str]:
    lowered = [str(c).lower() for c in columns]
    patterns = []
    if any("meter" in c or "event" in c for c in lowered):
        patterns.append("Meter names detected")
    if any(k in c for c in lowered for k in ("rate", "price", "cost", "fee")):
        patterns.append("Pricing information found")
    if any(k in c for c in lowered for k in ("unit", "gb", "hour", "request")):
        patterns.append("Usage units identified")
    return patterns


# ── Item normalization ──────────────────────────────────────────

def extract_price(row: Dict[str, Any]) -> float:
    for name in PRICE_FIELDS:
        value = find_field_value(row, name)
        if value is not None:
            return parse_amount(value)
    return 0.0


def extract_interval(row: Dict[str, Any]) -> str:
    for name in INTERVAL_FIELDS:
        value = find_field_value(row, name)
        if value:
            text = str(value).lower()
            if "month" in text:
                return "month"
            if "year" in text:
                return "year"
            if "week" in text:
                return "week"
    return "month"


def normalize_rows(rows: Sequence[Dict[str, Any]], structure: str) -> List[ProvisionalItem]:
    items = []
    for index, row in enumerate(rows):
        product_name = _first_text(row, NAME_FIELDS) or f"Service {index + 1}"
        price = extract_price(row)
        kind = BillingKind.RECURRING if structure == "subscription_plans" else BillingKind.METERED
        item = ProvisionalItem(
            id=f"item_{index}",
            product_name=product_name,
            description=_first_text(row, DESCRIPTION_FIELDS) or DEFAULT_DESCRIPTION,
            billing_kind=kind,
            price=price,
            price_minor_units=to_minor_units(price),
            metadata={
                "ai_parsed": "true",
                "structure": structure,
                "original_data": json.dumps(row, sort_keys=True, default=str),
            },
        )
        if structure in ("metered_services", "mixed"):
            item.event_name = _first_text(row, EVENT_FIELDS) or slugify(product_name)
            item.unit = _first_text(row, UNIT_FIELDS) or "units"
            item.billing_scheme = "per_unit"
            item.usage_type = "metered"
            item.aggregation = "sum"
        if structure == "subscription_plans":
            item.interval = extract_interval(row)
        items.append(item)
    return items


# ── Main entry point ─────────────────────────────────────────────

def classify(
    rows: Sequence[Dict[str, Any]],
    format: str = "csv",
    *,
    config: Optional[ClassifierConfig] = None,
) -> ClassificationResult:
    """Classify tabular billing data and normalize it into provisional items.

    Args:
        rows: List of string-keyed records (CSV rows, JSON objects, parsed text).
        format: How the caller obtained ``rows`` (csv, json, xml, text).
            Recorded only; it does not change the algorithm.
        config: Threshold overrides. Defaults to ClassifierConfig().

    Returns:
        ClassificationResult. Identical input yields an identical result.
    """
    cfg = config or DEFAULT_CONFIG
    rows = [r for r in rows if isinstance(r, dict)]

    if not rows:
        return ClassificationResult(
            structure="unknown",
            confidence=0,
            items=[],
            suggested_model_type=ModelType.PAY_AS_YOU_GO,
            patterns=["No data provided"],
        )

    columns = [str(c) for c in rows[0].keys()]
    column_text = " ".join(columns).lower()
    metered = column_score(column_text, METERED_INDICATORS)
    subscription = column_score(column_text, SUBSCRIPTION_INDICATORS)
    content_metered, content_subscription = content_scores(rows, cfg)
    # Content points count toward the decision as well as the confidence.
    metered += content_metered
    subscription += content_subscription

    structure = "unknown"
    confidence = 0
    suggested = ModelType.PAY_AS_YOU_GO
    patterns: List[str] = []

    if metered > subscription and metered > cfg.dominant_threshold:
        structure = "metered_services"
        confidence = min(cfg.metered_confidence_cap, metered * 100 + content_metered)
        patterns.append("Metered billing structure detected")
    elif subscription > cfg.dominant_threshold:
        structure = "subscription_plans"
        confidence = min(cfg.subscription_confidence_cap, subscription * 100 + content_subscription)
        suggested = ModelType.FLAT_RECURRING
        patterns.append("Subscription billing structure detected")
    elif metered > cfg.mixed_threshold and subscription > cfg.mixed_threshold:
        structure = "mixed"
        confidence = cfg.mixed_confidence
        suggested = ModelType.FIXED_FEE_OVERAGE
        patterns.append("Mixed billing model detected")

    patterns.extend(_detect_patterns(columns))

    return ClassificationResult(
        structure=structure,
        confidence=int(round(confidence)),
        items=normalize_rows(rows, structure),
        suggested_model_type=suggested,
        detected_columns=columns,
        patterns=patterns,
    )
