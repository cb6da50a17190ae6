"""Tests for duplicate product cleanup."""

from __future__ import annotations

from pricepilot.core.billing.cleanup import (
    DeactivationAction,
    RemotePrice,
    RemoteProduct,
    choose_survivor,
    plan_cleanup,
)
from pricepilot.core.billing.deploy import Reconciler
from pricepilot.core.billing.stripe import MockStripeClient
from pricepilot.core.catalog import catalog_model


def _meta(tier_id: str) -> dict:
    return {"created_via": "pricepilot", "tier_id": tier_id}


def _product(pid: str, created: int, tier_id: str = "starter", monthly: bool = False, **kwargs) -> RemoteProduct:
    prices = [RemotePrice(id=f"{pid}_price", interval="month" if monthly else None)]
    return RemoteProduct(id=pid, name=pid, created=created, metadata=_meta(tier_id), prices=prices, **kwargs)


# ── Planning ────────────────────────────────────────────────────


class TestPlanCleanup:
    def test_monthly_price_beats_newer(self):
        older = _product("old", 100, monthly=True)
        newer = _product("new", 200)
        assert choose_survivor([older, newer]).id == "old"

        actions = plan_cleanup([older, newer])
        assert len(actions) == 1
        assert actions[0].product_id == "new"
        assert actions[0].kept_product_id == "old"
        assert actions[0].price_ids == ["new_price"]

    def test_newest_wins_without_monthly(self):
        actions = plan_cleanup([_product("a", 100), _product("b", 300), _product("c", 200)])
        assert {a.kept_product_id for a in actions} == {"b"}
        assert [a.product_id for a in actions] == ["c", "a"]

    def test_newest_monthly_wins_among_monthly(self):
        group = [_product("a", 100, monthly=True), _product("b", 200, monthly=True)]
        assert choose_survivor(group).id == "b"

    def test_single_product_untouched(self):
        assert plan_cleanup([_product("a", 100)]) == []

    def test_tiers_grouped_separately(self):
        actions = plan_cleanup([
            _product("s1", 100, "starter"),
            _product("p1", 100, "professional"),
            _product("s2", 200, "starter"),
        ])
        assert [(a.tier_id, a.product_id) for a in actions] == [("starter", "s1")]

    def test_products_of_one_tier_deploy_are_not_duplicates(self):
        base = _product("base", 100, monthly=True)
        base.metadata["item_ref"] = "starter_base"
        usage = _product("usage", 200, monthly=True)
        usage.metadata["item_ref"] = "starter_transactions"
        assert plan_cleanup([base, usage]) == []

    def test_ignores_inactive_and_foreign(self):
        foreign = RemoteProduct(id="f", created=300, metadata={"created_via": "zapier"})
        inactive = _product("i", 400, active=False)
        actions = plan_cleanup([_product("a", 100), _product("b", 200), foreign, inactive])
        assert [a.product_id for a in actions] == ["a"]

    def test_app_managed_markers(self):
        assert RemoteProduct(id="x", metadata={"created_via": "billing_app_v1"}).is_app_managed
        assert RemoteProduct(id="x", metadata={"billing_model_type": "per_seat"}).is_app_managed
        assert not RemoteProduct(id="x", metadata={"created_via": "manual"}).is_app_managed

    def test_inactive_prices_not_listed(self):
        dup = _product("dup", 100)
        dup.prices.append(RemotePrice(id="gone", active=False))
        actions = plan_cleanup([dup, _product("keep", 200)])
        assert actions[0].price_ids == ["dup_price"]


# ── Execution ───────────────────────────────────────────────────


def _seeded_mock():
    mock = MockStripeClient()
    ids = {}
    ids["starter_keep"] = mock.add_product(name="Starter", metadata=_meta("starter"), created=100)
    mock.add_price(ids["starter_keep"], unit_amount=1900, interval="month")
    ids["starter_dup"] = mock.add_product(name="Starter", metadata=_meta("starter"), created=200)
    ids["starter_dup_price"] = mock.add_price(ids["starter_dup"], unit_amount=1900, default=True)
    ids["pro_keep"] = mock.add_product(name="Pro", metadata=_meta("professional"), created=100)
    mock.add_price(ids["pro_keep"], unit_amount=4900, interval="month")
    ids["pro_dup"] = mock.add_product(name="Pro", metadata=_meta("professional"), created=200)
    ids["pro_dup_price"] = mock.add_price(ids["pro_dup"], unit_amount=4900)
    return mock, ids


class TestExecuteCleanup:
    def test_fetch_and_plan(self):
        mock, ids = _seeded_mock()
        actions = Reconciler(mock).plan_cleanup()
        assert [a.product_id for a in actions] == [ids["pro_dup"], ids["starter_dup"]]
        assert mock.calls.count("set_price_active") == 0

    def test_default_price_blocks_product_only(self):
        mock, ids = _seeded_mock()
        reconciler = Reconciler(mock)
        result = reconciler.execute_cleanup(reconciler.plan_cleanup())

        assert result.ok
        assert result.deactivated == [ids["pro_dup_price"], ids["pro_dup"]]
        assert [s["ref"] for s in result.skipped] == [ids["starter_dup_price"], ids["starter_dup"]]
        assert result.skipped[1]["reason"] == "not all prices could be deactivated"
        assert mock.products[ids["starter_dup"]]["active"] is True
        assert mock.products[ids["pro_dup"]]["active"] is False
        assert mock.products[ids["starter_keep"]]["active"] is True

    def test_remote_error_recorded(self):
        mock, ids = _seeded_mock()
        mock.fail_on["set_product_active"] = "*"
        reconciler = Reconciler(mock)
        result = reconciler.execute_cleanup(reconciler.plan_cleanup())
        assert not result.ok
        assert result.errors[0]["ref"] == ids["pro_dup"]
        assert "injected failure" in result.errors[0]["message"]

    def test_to_dict(self):
        mock, _ = _seeded_mock()
        reconciler = Reconciler(mock)
        d = reconciler.execute_cleanup(reconciler.plan_cleanup()).to_dict()
        assert set(d) == {"deactivated", "skipped", "errors", "ok"}

    def test_unexpected_error_recorded(self):
        mock, ids = _seeded_mock()
        action = DeactivationAction(
            product_id=ids["pro_dup"], product_name="Pro", tier_id="professional",
            kept_product_id=ids["pro_keep"], price_ids=["price_missing", ids["pro_dup_price"]],
        )
        result = Reconciler(mock).execute_cleanup([action])
        assert [e["ref"] for e in result.errors] == ["price_missing"]
        assert result.deactivated == [ids["pro_dup_price"]]
        assert result.skipped[-1]["ref"] == ids["pro_dup"]
        assert mock.products[ids["pro_dup"]]["active"] is True


# ── Catalog deploys ─────────────────────────────────────────────


class TestCatalogDeploys:
    def test_single_tier_deploy_is_clean(self):
        reconciler = Reconciler(MockStripeClient())
        result = reconciler.deploy(catalog_model("starter"))
        assert result.ok
        assert len(result.products_created) == 2
        assert reconciler.plan_cleanup() == []

    def test_redeploy_pairs_products_by_role(self):
        reconciler = Reconciler(MockStripeClient())
        first = reconciler.deploy(catalog_model("starter"))
        second = reconciler.deploy(catalog_model("starter"))
        old = {p["item_ref"]: p["id"] for p in first.products_created}
        new = {p["item_ref"]: p["id"] for p in second.products_created}

        actions = reconciler.plan_cleanup()
        assert [(a.product_id, a.kept_product_id) for a in actions] == [
            (old["starter_base"], new["starter_base"]),
            (old["starter_transactions"], new["starter_transactions"]),
        ]
