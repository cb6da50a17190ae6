"""Pre-flight validation for billing models.

validate_model() either returns a normalized copy of the model or raises
ValidationError naming the offending item and field. Nothing here talks to
the billing provider.
"""

from __future__ import annotations

import dataclasses
import math
import re
from typing import Any, List, Set

from pricepilot.core.errors import ValidationError
from pricepilot.core.models import (
    INTERVALS,
    Aggregation,
    BillingItem,
    BillingModel,
    MeteredItem,
    RecurringItem,
)

EVENT_NAME_MAX_LEN = 50

_EVENT_NAME_RE = re.compile(r"^[a-z0-9_]+$")
_DISALLOWED_RE = re.compile(r"[^a-z0-9_]")
_REPEATS_RE = re.compile(r"_+")

# ISO 4217 codes accepted by the provider for prices.
CURRENCIES: Set[str] = {
    "aed", "afn", "all", "amd", "ang", "aoa", "ars", "aud", "awg", "azn",
    "bam", "bbd", "bdt", "bgn", "bhd", "bif", "bmd", "bnd", "bob", "brl",
    "bsd", "bwp", "byn", "bzd", "cad", "cdf", "chf", "clp", "cny", "cop",
    "crc", "cve", "czk", "djf", "dkk", "dop", "dzd", "egp", "etb", "eur",
    "fjd", "fkp", "gbp", "gel", "gip", "gmd", "gnf", "gtq", "gyd", "hkd",
    "hnl", "htg", "huf", "idr", "ils", "inr", "isk", "jmd", "jod", "jpy",
    "kes", "kgs", "khr", "kmf", "krw", "kwd", "kyd", "kzt", "lak", "lbp",
    "lkr", "lrd", "lsl", "mad", "mdl", "mga", "mkd", "mmk", "mnt", "mop",
    "mur", "mvr", "mwk", "mxn", "myr", "mzn", "nad", "ngn", "nio", "nok",
    "npr", "nzd", "omr", "pab", "pen", "pgk", "php", "pkr", "pln", "pyg",
    "qar", "ron", "rsd", "rub", "rwf", "sar", "sbd", "scr", "sek", "sgd",
    "shp", "sle", "sos", "srd", "std", "szl", "thb", "tjs", "tnd", "top",
    "try", "ttd", "twd", "tzs", "uah", "ugx", "usd", "uyu", "uzs", "vnd",
    "vuv", "wst", "xaf", "xcd", "xof", "xpf", "yer", "zar", "zmw",
}


def normalize_event_name(name: str) -> str:
    """Turn an arbitrary label into a machine token ``[a-z0-9_]+``.

    Lowercases, replaces disallowed characters with ``_``, collapses runs of
    ``_``, trims leading/trailing ``_`` and truncates to 50 characters.
    Already-normalized names come back unchanged.
    """
    token = _DISALLOWED_RE.sub("_", str(name).strip().lower())
    token = _REPEATS_RE.sub("_", token).strip("_")
    return token[:EVENT_NAME_MAX_LEN].rstrip("_")


def is_event_name(name: str) -> bool:
    return bool(name) and len(name) <= EVENT_NAME_MAX_LEN and bool(_EVENT_NAME_RE.match(name))


def _check_whole(value: Any, item_id: str, field: str, label: str) -> int:
    """A non-negative integer, accepting integral floats and numeric strings."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer", item_id=item_id, field=field)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value) or not value.is_integer():
            raise ValidationError(
                f"{label} must be a whole number, got {value!r}",
                item_id=item_id, field=field,
            )
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(
                f"{label} is not an integer: {value!r}",
                item_id=item_id, field=field,
            ) from None
    if not isinstance(value, int):
        raise ValidationError(
            f"{label} must be an integer, got {type(value).__name__}",
            item_id=item_id, field=field,
        )
    if value < 0:
        raise ValidationError(f"{label} must be >= 0", item_id=item_id, field=field)
    return value


def _check_minor_units(value: Any, item_id: str) -> int:
    return _check_whole(value, item_id, "price_minor_units", "price")


def validate_item(item: BillingItem) -> BillingItem:
    """Validate one item and return a normalized copy."""
    item_id = item.id
    name = (item.product_name or "").strip()
    if not name:
        raise ValidationError("product name is required", item_id=item_id, field="product_name")

    price = _check_minor_units(item.price_minor_units, item_id)

    currency = (item.currency or "").strip().lower()
    if currency not in CURRENCIES:
        raise ValidationError(
            f"unrecognized currency {item.currency!r}", item_id=item_id, field="currency"
        )

    changes = {"product_name": name, "price_minor_units": price, "currency": currency}

    if isinstance(item, RecurringItem):
        interval = (item.interval or "").strip().lower()
        if interval not in INTERVALS:
            raise ValidationError(
                f"interval must be one of {', '.join(INTERVALS)}, got {item.interval!r}",
                item_id=item_id, field="interval",
            )
        changes["interval"] = interval

    if isinstance(item, MeteredItem):
        raw = (item.event_name or "").strip()
        if not raw:
            raise ValidationError("event name is required", item_id=item_id, field="event_name")
        event_name = raw if is_event_name(raw) else normalize_event_name(raw)
        if not event_name:
            raise ValidationError(
                f"event name {raw!r} has no usable characters",
                item_id=item_id, field="event_name",
            )
        if not isinstance(item.aggregation, Aggregation):
            raise ValidationError(
                f"unsupported aggregation {item.aggregation!r}",
                item_id=item_id, field="aggregation",
            )
        included = _check_whole(item.included_usage, item_id, "included_usage", "included usage")
        rate = item.overage_rate_per_unit
        if (
            isinstance(rate, bool)
            or not isinstance(rate, (int, float))
            or not math.isfinite(rate)
            or rate < 0
        ):
            raise ValidationError(
                f"overage rate must be a finite number >= 0, got {rate!r}",
                item_id=item_id, field="overage_rate_per_unit",
            )
        changes["event_name"] = event_name
        changes["included_usage"] = included

    return dataclasses.replace(item, **changes)


def validate_model(model: BillingModel) -> BillingModel:
    """Validate a billing model; return a normalized copy or raise ValidationError."""
    if not (model.name or "").strip():
        raise ValidationError("model name is required", field="name")
    if not model.items:
        raise ValidationError("model must contain at least one item", field="items")

    seen: Set[str] = set()
    items: List[BillingItem] = []
    for item in model.items:
        if item.id in seen:
            raise ValidationError("duplicate item id", item_id=item.id, field="id")
        seen.add(item.id)
        items.append(validate_item(item))

    return dataclasses.replace(model, name=model.name.strip(), items=items)
