"""Tests for deployment planning."""

from __future__ import annotations

from pricepilot.core.billing.plan import (
    MeterSpec,
    graduated_tiers,
    plan_deployment,
    price_for_item,
)
from pricepilot.core.catalog import catalog_model
from pricepilot.core.models import (
    Aggregation,
    BillingModel,
    MeteredItem,
    ModelType,
    OneTimeItem,
    RecurringItem,
)
from pricepilot.tests.conftest import model_dict


# ── Price shapes ────────────────────────────────────────────────


class TestPriceForItem:
    def test_overage_tiers(self):
        item = MeteredItem(
            id="tx", product_name="Transactions", event_name="tx",
            included_usage=1000, overage_rate_per_unit=0.02,
        )
        price = price_for_item(ModelType.FIXED_FEE_OVERAGE, item)
        assert price.billing_scheme == "tiered"
        assert price.tiers_mode == "graduated"
        assert price.unit_amount is None
        assert price.tiers == [
            {"up_to": 1000, "unit_amount": 0},
            {"up_to": "inf", "unit_amount": 2},
        ]
        assert price.recurring == {"interval": "month", "usage_type": "metered", "aggregate_usage": "sum"}
        assert price.price_type == "overage"
        assert price.metadata["included_usage"] == "1000"

    def test_overage_needs_both_values(self):
        item = MeteredItem(
            id="tx", product_name="Transactions", event_name="tx", price_minor_units=3,
            included_usage=0, overage_rate_per_unit=0.02,
        )
        price = price_for_item(ModelType.FIXED_FEE_OVERAGE, item)
        assert price.billing_scheme == "per_unit"
        assert price.tiers is None
        assert price.unit_amount == 3

    def test_metered_pay_as_you_go(self):
        item = MeteredItem(
            id="m", product_name="Peak GB", event_name="peak_gb",
            price_minor_units=5, aggregation=Aggregation.MAX,
        )
        params = price_for_item(ModelType.PAY_AS_YOU_GO, item).to_stripe_params("prod_1")
        assert params["product"] == "prod_1"
        assert params["unit_amount"] == 5
        assert params["recurring"]["aggregate_usage"] == "max"
        assert "tiers" not in params

    def test_base_plan(self):
        item = RecurringItem(id="b", product_name="Base", price_minor_units=1900, interval="month")
        price = price_for_item(ModelType.FIXED_FEE_OVERAGE, item)
        assert price.unit_amount == 1900
        assert price.recurring == {"interval": "month"}
        assert price.price_type == "base_plan"

    def test_flat_recurring_has_no_price_type(self):
        item = RecurringItem(id="b", product_name="Annual", price_minor_units=99000, interval="year")
        price = price_for_item(ModelType.FLAT_RECURRING, item)
        assert price.recurring == {"interval": "year"}
        assert price.price_type == ""

    def test_per_seat(self):
        item = RecurringItem(id="s", product_name="Seat", price_minor_units=2500, interval="month")
        price = price_for_item(ModelType.PER_SEAT, item)
        assert price.recurring == {"interval": "month", "usage_type": "licensed"}
        assert price.price_type == "per_seat"

    def test_one_time(self):
        item = OneTimeItem(id="o", product_name="Setup", price_minor_units=9900)
        params = price_for_item(ModelType.PAY_AS_YOU_GO, item).to_stripe_params()
        assert params["unit_amount"] == 9900
        assert "recurring" not in params
        assert "product" not in params

    def test_graduated_tiers_round_half_away(self):
        assert graduated_tiers(10, 0.125)[1]["unit_amount"] == 13


# ── Plans ───────────────────────────────────────────────────────


class TestPlanDeployment:
    def test_one_product_and_price_per_item(self):
        model = BillingModel.from_dict(model_dict())
        plan = plan_deployment(model)
        assert [p.item_ref for p in plan.products_to_create] == ["item_1", "item_2", "item_3"]
        assert [p.item_ref for p in plan.prices_to_create] == ["item_1", "item_2", "item_3"]
        assert [m.event_name for m in plan.meters_to_create] == ["api_calls", "storage_gb", "compute_hours"]
        assert plan.stale_objects_to_deactivate == []

    def test_pure(self):
        model = BillingModel.from_dict(model_dict())
        assert plan_deployment(model).to_dict() == plan_deployment(model).to_dict()

    def test_existing_meter_skipped(self):
        model = BillingModel.from_dict(model_dict())
        plan = plan_deployment(model, existing_meter_events=["storage_gb"])
        assert plan.skipped_meters == ["storage_gb"]
        assert [m.item_ref for m in plan.meters_to_create] == ["item_1", "item_3"]
        assert len(plan.prices_for("item_2")) == 1

    def test_product_metadata(self):
        plan = plan_deployment(catalog_model("starter"))
        base, usage = plan.products_to_create
        assert base.metadata["created_via"] == "pricepilot"
        assert base.metadata["billing_model_id"] == "catalog_starter"
        assert base.metadata["billing_model_type"] == "fixed_fee_overage"
        assert base.metadata["tier_id"] == "starter"
        assert base.metadata["item_ref"] == "starter_base"
        assert "meter_name" not in base.metadata
        assert usage.metadata["meter_name"] == "pricepilot_starter_transactions"

    def test_default_description(self):
        model = BillingModel.from_dict(model_dict())
        plan = plan_deployment(model)
        assert plan.products_to_create[0].description == "API Calls - metered billing"

    def test_catalog_starter_prices(self):
        plan = plan_deployment(catalog_model("starter"))
        base, usage = plan.prices_to_create
        assert base.price_type == "base_plan"
        assert base.unit_amount == 1900
        assert usage.price_type == "overage"
        assert usage.tiers[1]["unit_amount"] == 2

    def test_lookup_helpers(self):
        plan = plan_deployment(BillingModel.from_dict(model_dict()))
        assert plan.item_refs() == ["item_1", "item_2", "item_3"]
        assert plan.product_for("item_2").name == "Storage"
        assert plan.product_for("nope") is None
        assert plan.meters_for("item_2")[0].aggregation == Aggregation.MAX


class TestMeterSpec:
    def test_formula_mapping(self):
        assert MeterSpec("a", "A", "a", Aggregation.MAX).to_stripe_params()["formula"] == "sum"
        assert MeterSpec("a", "A", "a", Aggregation.LAST_EVER).to_stripe_params()["formula"] == "last"
        assert MeterSpec("a", "A", "a").to_stripe_params() == {
            "display_name": "A",
            "event_name": "a",
            "formula": "sum",
        }
