"""Tests for the billing data classifier."""

from __future__ import annotations

import pytest

from pricepilot.core.classify import (
    ClassifierConfig,
    classify,
    column_score,
    content_scores,
    find_field_value,
    METERED_INDICATORS,
)
from pricepilot.core.models import BillingKind, ModelType


METERED_ROWS = [
    {"meter_name": "api_calls", "event_name": "api_call", "rate": "$0.002"},
    {"meter_name": "storage", "event_name": "storage_gb", "rate": "$0.10"},
    {"meter_name": "bandwidth", "event_name": "egress_gb", "rate": "$0.05"},
]

PLAN_ROWS = [
    {"plan": "Starter", "monthly_price": "$19", "interval": "month"},
    {"plan": "Professional", "monthly_price": "$49", "interval": "month"},
    {"plan": "Business", "monthly_price": "$99", "interval": "yearly"},
]


# ── Edge cases ──────────────────────────────────────────────────


class TestEmptyInput:
    def test_empty_rows_unknown(self):
        result = classify([], "csv")
        assert result.structure == "unknown"
        assert result.confidence == 0
        assert result.items == []
        assert result.suggested_model_type == ModelType.PAY_AS_YOU_GO

    def test_non_dict_rows_ignored(self):
        result = classify(["not a row", 3], "json")  # type: ignore[list-item]
        assert result.structure == "unknown"
        assert result.items == []

    def test_no_signal_is_unknown_with_items(self):
        result = classify([{"a": "x", "b": "y"}], "csv")
        assert result.structure == "unknown"
        assert result.confidence == 0
        assert result.suggested_model_type == ModelType.PAY_AS_YOU_GO
        assert len(result.items) == 1
        assert result.items[0].product_name == "Service 1"


# ── Structure detection ─────────────────────────────────────────


class TestStructure:
    def test_metered_columns_dominate(self):
        result = classify(METERED_ROWS, "csv")
        assert result.structure == "metered_services"
        assert result.suggested_model_type == ModelType.PAY_AS_YOU_GO
        assert result.confidence >= 30
        assert result.confidence <= 90

    def test_subscription_columns_dominate(self):
        result = classify(PLAN_ROWS, "csv")
        assert result.structure == "subscription_plans"
        assert result.suggested_model_type == ModelType.FLAT_RECURRING
        assert result.confidence <= 85

    def test_mixed_structure(self):
        rows = [{"usage": "a", "meter": "b", "api": "c", "plan": "d", "tier": "e"}]
        cfg = ClassifierConfig(dominant_threshold=0.9)
        result = classify(rows, "csv", config=cfg)
        assert result.structure == "mixed"
        assert result.confidence == 75
        assert result.suggested_model_type == ModelType.FIXED_FEE_OVERAGE

    def test_format_does_not_change_result(self):
        assert classify(METERED_ROWS, "csv") == classify(METERED_ROWS, "json")

    def test_pure(self):
        first = classify(METERED_ROWS, "csv")
        second = classify(METERED_ROWS, "csv")
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_patterns_reported(self):
        result = classify(METERED_ROWS, "csv")
        assert "Meter names detected" in result.patterns
        assert "Pricing information found" in result.patterns
        assert result.detected_columns == ["meter_name", "event_name", "rate"]


# ── Scoring helpers ─────────────────────────────────────────────


class TestScoring:
    def test_column_score_fraction(self):
        score = column_score("meter_name event_name rate", METERED_INDICATORS)
        assert score == pytest.approx(3 / len(METERED_INDICATORS))

    def test_column_score_zero(self):
        assert column_score("foo bar", METERED_INDICATORS) == 0.0

    def test_content_scores_micro_prices(self):
        metered, subscription = content_scores([{"p": "$0.01"}, {"p": "0.5 per hour"}])
        assert metered == 10 + 10 + 5
        assert subscription == 0

    def test_content_scores_plan_prices(self):
        metered, subscription = content_scores([{"p": "$49", "i": "month"}])
        assert metered == 0
        assert subscription == 15

    def test_find_field_value_substring_case_insensitive(self):
        row = {"Per Unit Rate (USD)": "0.10", "Name": "API"}
        assert find_field_value(row, "rate") == "0.10"
        assert find_field_value(row, "name") == "API"
        assert find_field_value(row, "missing") is None


# ── Item normalization ──────────────────────────────────────────


class TestItems:
    def test_metered_items(self):
        result = classify(METERED_ROWS, "csv")
        item = result.items[0]
        assert item.billing_kind == BillingKind.METERED
        assert item.event_name == "api_calls"
        assert item.billing_scheme == "per_unit"
        assert item.usage_type == "metered"
        assert item.aggregation == "sum"
        assert item.unit == "units"
        assert item.interval is None

    def test_price_rounds_half_away_from_zero(self):
        result = classify([{"meter_name": "x", "rate": "$0.125"}], "csv")
        assert result.items[0].price_minor_units == 13

    def test_bad_price_becomes_zero(self):
        result = classify([{"meter_name": "x", "rate": "call us"}], "csv")
        assert result.items[0].price == 0.0
        assert result.items[0].price_minor_units == 0

    def test_subscription_interval(self):
        result = classify(PLAN_ROWS, "csv")
        assert [i.interval for i in result.items] == ["month", "month", "year"]
        assert all(i.billing_kind == BillingKind.RECURRING for i in result.items)
        assert result.items[0].event_name is None

    def test_subscription_interval_defaults_to_month(self):
        rows = [{"plan": "Pro", "monthly_price": "$49", "interval": "quarterly"}]
        result = classify(rows, "csv")
        assert result.items[0].interval == "month"

    def test_name_fallback_and_default_description(self):
        result = classify([{"meter": "", "rate": "0.5"}], "csv")
        assert result.items[0].product_name == "Service 1"
        assert result.items[0].description == "AI-parsed service"

    def test_event_name_slug_from_product(self):
        rows = [{"name": "API Calls", "usage rate": "$0.01", "unit": "request"}]
        result = classify(rows, "csv")
        assert result.structure == "metered_services"
        assert result.items[0].event_name == "api_calls"
        assert result.items[0].unit == "request"

    def test_metadata_records_source(self):
        result = classify(METERED_ROWS, "csv")
        meta = result.items[0].metadata
        assert meta["ai_parsed"] == "true"
        assert meta["structure"] == "metered_services"
        assert '"meter_name": "api_calls"' in meta["original_data"]

    def test_to_dict_shape(self):
        d = classify(METERED_ROWS, "csv").to_dict()
        assert d["structure"] == "metered_services"
        assert d["suggested_model_type"] == "pay_as_you_go"
        assert d["items"][0]["billing_kind"] == "metered"
        assert "interval" not in d["items"][0]
