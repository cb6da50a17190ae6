"""Tests for the seeded tier catalog."""

from __future__ import annotations

import dataclasses

import pytest

from pricepilot.core.catalog import TIERS, catalog_model, get_tier
from pricepilot.core.models import MeteredItem, ModelType, RecurringItem
from pricepilot.core.validation import validate_model


class TestTiers:
    def test_lookup_case_insensitive(self):
        assert get_tier("STARTER").monthly_base_cents == 1900

    def test_unknown_tier(self):
        with pytest.raises(KeyError):
            get_tier("platinum")

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            TIERS["starter"].monthly_base_cents = 0  # type: ignore[misc]


class TestCatalogModel:
    def test_starter_has_base_and_overage(self):
        model = catalog_model("starter")
        assert model.id == "catalog_starter"
        assert model.model_type == ModelType.FIXED_FEE_OVERAGE

        base, usage = model.items
        assert isinstance(base, RecurringItem)
        assert base.price_minor_units == 1900
        assert base.interval == "month"
        assert base.metadata["tier_id"] == "starter"

        assert isinstance(usage, MeteredItem)
        assert usage.event_name == "pricepilot_starter_transactions"
        assert usage.included_usage == 1000
        assert usage.overage_rate_per_unit == 0.02

    def test_business_is_flat(self):
        model = catalog_model("business")
        assert model.model_type == ModelType.FLAT_RECURRING
        assert len(model.items) == 1

    @pytest.mark.parametrize("tier_id", sorted(TIERS))
    def test_every_tier_validates(self, tier_id):
        validate_model(catalog_model(tier_id))
