"""Repo-wide test fixtures.

Snapshots and restores configuration environment variables between tests
so a test that enables Stripe or persistence cannot leak into the next.
"""

from __future__ import annotations

import os

import pytest

_SENSITIVE_ENV_VARS = [
    "PRICEPILOT_ENV",
    "PRICEPILOT_BIND",
    "PRICEPILOT_PORT",
    "PRICEPILOT_ALLOW_NONLOCAL",
    "PRICEPILOT_ENABLE_DOCS",
    "PRICEPILOT_DATA_DIR",
    "PRICEPILOT_MODELS_PERSIST",
    "PRICEPILOT_LOG_FORMAT",
    "PRICEPILOT_STRIPE_ENABLED",
    "PRICEPILOT_USE_MOCK_STRIPE",
    "STRIPE_SECRET_KEY",
    "STRIPE_API_VERSION",
]


@pytest.fixture(autouse=True)
def _restore_env():
    """Snapshot config env vars before each test and restore after."""
    snapshot = {}
    for var in _SENSITIVE_ENV_VARS:
        val = os.environ.get(var)
        if val is not None:
            snapshot[var] = val

    yield

    for var in _SENSITIVE_ENV_VARS:
        if var in snapshot:
            os.environ[var] = snapshot[var]
        else:
            os.environ.pop(var, None)
