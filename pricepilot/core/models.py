"""Billing model data types -- items, models, and their JSON form.

All models are plain dataclasses with to_dict()/from_dict() for
serialization. No Pydantic here (API Pydantic models live in
core/api/models.py).

BillingItem is a tagged variant: MeteredItem, RecurringItem and OneTimeItem
each carry only the fields that are valid for their billing kind.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pricepilot.core.errors import ValidationError


class BillingKind(str, Enum):
    METERED = "metered"
    RECURRING = "recurring"
    ONE_TIME = "one_time"


class ModelType(str, Enum):
    PAY_AS_YOU_GO = "pay_as_you_go"
    FLAT_RECURRING = "flat_recurring"
    FIXED_FEE_OVERAGE = "fixed_fee_overage"
    PER_SEAT = "per_seat"


class Aggregation(str, Enum):
    SUM = "sum"
    LAST_DURING_PERIOD = "last_during_period"
    LAST_EVER = "last_ever"
    MAX = "max"


INTERVALS = ("day", "week", "month", "year")


def _coerce_enum(enum_cls: Type[Enum], value: Any) -> Any:
    """Accept enum members, values, and the hyphenated UI spellings."""
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip().lower().replace("-", "_")
    aliases = {"fixed_overage": "fixed_fee_overage", "onetime": "one_time"}
    return enum_cls(aliases.get(text, text))


def _pick(d: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in d and d[key] is not None:
            return d[key]
    return default


def _whole_number(value: Any, name: str) -> int:
    """int() that refuses to truncate: 1000.0 and "1000" pass, 1000.7 does not."""
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
        try:
            return int(value)
        except ValueError:
            value = float(value)
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"{name} must be a whole number, got {value!r}")
    return int(value)


def _finite_number(value: Any, name: str) -> float:
    number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"{name} must be a finite number, got {value!r}")
    return number


@dataclass
class BillingItem:
    """Fields shared by every billing kind."""

    id: str
    product_name: str
    price_minor_units: int = 0
    currency: str = "usd"
    description: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    billing_kind = BillingKind.ONE_TIME

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "id": self.id,
            "product_name": self.product_name,
            "price_minor_units": self.price_minor_units,
            "currency": self.currency,
            "billing_kind": self.billing_kind.value,
            "metadata": dict(self.metadata),
        }
        if self.description is not None:
            d["description"] = self.description
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BillingItem":
        """Build the right variant from a persisted or user-supplied record.

        Raises ValidationError when a kind, aggregation or number cannot be parsed.
        """
        try:
            return cls._from_dict(d)
        except (TypeError, ValueError) as e:
            raise ValidationError(str(e), item_id=str(d.get("id", "")) or None) from e

    @classmethod
    def _from_dict(cls, d: Dict[str, Any]) -> "BillingItem":
        kind = _coerce_enum(
            BillingKind, _pick(d, "billing_kind", "billingKind", "type", default="one_time")
        )
        common: Dict[str, Any] = {
            "id": str(_pick(d, "id", default="")),
            "product_name": str(_pick(d, "product_name", "productName", "product", default="")),
            "price_minor_units": _pick(
                d, "price_minor_units", "priceMinorUnits", "unit_amount", default=0
            ),
            "currency": str(_pick(d, "currency", default="usd")),
            "description": _pick(d, "description"),
            "metadata": {str(k): str(v) for k, v in (d.get("metadata") or {}).items()},
        }
        if kind == BillingKind.METERED:
            return MeteredItem(
                **common,
                event_name=str(_pick(d, "event_name", "eventName", default="")),
                aggregation=_coerce_enum(
                    Aggregation,
                    _pick(d, "aggregation", "aggregate_usage", default="sum"),
                ),
                included_usage=_whole_number(
                    _pick(d, "included_usage", "includedUsage", default=0), "included_usage"
                ),
                overage_rate_per_unit=_finite_number(
                    _pick(d, "overage_rate_per_unit", "overageRatePerUnit", default=0.0),
                    "overage_rate_per_unit",
                ),
            )
        if kind == BillingKind.RECURRING:
            return RecurringItem(
                **common,
                interval=str(_pick(d, "interval", default="")).lower(),
            )
        return OneTimeItem(**common)


@dataclass
class MeteredItem(BillingItem):
    """Usage-based line correlated with a meter through ``event_name``."""

    event_name: str = ""
    aggregation: Aggregation = Aggregation.SUM
    included_usage: int = 0
    overage_rate_per_unit: float = 0.0

    billing_kind = BillingKind.METERED

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["event_name"] = self.event_name
        d["aggregation"] = self.aggregation.value
        if self.included_usage:
            d["included_usage"] = self.included_usage
        if self.overage_rate_per_unit:
            d["overage_rate_per_unit"] = self.overage_rate_per_unit
        return d


@dataclass
class RecurringItem(BillingItem):
    """Licensed line billed every ``interval``."""

    interval: str = ""

    billing_kind = BillingKind.RECURRING

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["interval"] = self.interval
        return d


@dataclass
class OneTimeItem(BillingItem):
    """Single charge, no recurrence."""

    billing_kind = BillingKind.ONE_TIME


@dataclass
class BillingModel:
    """A user-confirmed billing configuration."""

    id: str
    name: str
    model_type: ModelType
    items: List[BillingItem] = field(default_factory=list)
    description: str = ""
    created_at: str = ""
    owner_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "model_type": self.model_type.value,
            "created_at": self.created_at,
            "owner_id": self.owner_id,
            "items": [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BillingModel":
        raw_type = _pick(d, "model_type", "modelType", "type", default="pay_as_you_go")
        try:
            model_type = _coerce_enum(ModelType, raw_type)
        except ValueError as e:
            raise ValidationError(str(e), field="model_type") from e
        return cls(
            id=str(_pick(d, "id", default="")),
            name=str(_pick(d, "name", default="")),
            description=str(_pick(d, "description", default="")),
            model_type=model_type,
            created_at=str(_pick(d, "created_at", "createdAt", default="")),
            owner_id=str(_pick(d, "owner_id", "ownerId", "user_id", default="")),
            items=[BillingItem.from_dict(i) for i in d.get("items") or []],
        )
