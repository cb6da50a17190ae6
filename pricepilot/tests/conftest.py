"""Shared test fixtures for PricePilot tests."""

from __future__ import annotations

from typing import Any, Dict

import pytest

from pricepilot.core.billing.stripe import MockStripeClient


def model_dict(**overrides: Any) -> Dict[str, Any]:
    """A valid three-item pay-as-you-go model record."""
    d: Dict[str, Any] = {
        "id": "bm_test",
        "name": "API Platform",
        "model_type": "pay_as_you_go",
        "items": [
            {
                "id": "item_1",
                "product_name": "API Calls",
                "billing_kind": "metered",
                "price_minor_units": 1,
                "event_name": "api_calls",
            },
            {
                "id": "item_2",
                "product_name": "Storage",
                "billing_kind": "metered",
                "price_minor_units": 5,
                "event_name": "storage_gb",
                "aggregation": "max",
            },
            {
                "id": "item_3",
                "product_name": "Compute",
                "billing_kind": "metered",
                "price_minor_units": 12,
                "event_name": "compute_hours",
            },
        ],
    }
    d.update(overrides)
    return d


@pytest.fixture
def mock_stripe():
    return MockStripeClient()
