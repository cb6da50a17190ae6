"""Tests for centralized settings."""

from __future__ import annotations

import pytest

from pricepilot.core.api.settings import (
    Settings,
    load_settings,
    startup_warnings,
    validate_host,
)


class TestLoadSettings:
    def test_defaults(self, monkeypatch):
        for var in ("PRICEPILOT_ENV", "PRICEPILOT_PORT", "PRICEPILOT_DATA_DIR", "PRICEPILOT_STRIPE_ENABLED"):
            monkeypatch.delenv(var, raising=False)
        s = load_settings()
        assert s.env == "dev"
        assert s.port == 8080
        assert s.enable_docs is True
        assert s.stripe_enabled is False
        assert s.models_path.endswith("models.jsonl")

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv("PRICEPILOT_ENV", "prod")
        monkeypatch.setenv("PRICEPILOT_PORT", "9001")
        monkeypatch.setenv("PRICEPILOT_STRIPE_ENABLED", "1")
        monkeypatch.delenv("PRICEPILOT_ENABLE_DOCS", raising=False)
        s = load_settings()
        assert s.env == "prod"
        assert s.port == 9001
        assert s.enable_docs is False
        assert s.stripe_enabled is True

    def test_bad_port_falls_back(self, monkeypatch):
        monkeypatch.setenv("PRICEPILOT_PORT", "not-a-port")
        assert load_settings().port == 8080

    def test_overrides_win(self, monkeypatch):
        monkeypatch.setenv("PRICEPILOT_USE_MOCK_STRIPE", "0")
        s = load_settings(bind="localhost", port=9999, use_mock_stripe=True)
        assert s.bind == "localhost"
        assert s.port == 9999
        assert s.use_mock_stripe is True

    def test_frozen(self):
        import dataclasses

        with pytest.raises(dataclasses.FrozenInstanceError):
            Settings().port = 1  # type: ignore[misc]


class TestHostAndWarnings:
    def test_local_hosts_allowed(self):
        for host in ("127.0.0.1", "localhost", "::1"):
            validate_host(host, allow_nonlocal=False)

    def test_nonlocal_refused(self):
        with pytest.raises(ValueError, match="non-local"):
            validate_host("0.0.0.0", allow_nonlocal=False)
        validate_host("0.0.0.0", allow_nonlocal=True)

    def test_warnings(self):
        warnings = startup_warnings(Settings(allow_nonlocal=True, stripe_enabled=True, use_mock_stripe=True))
        assert len(warnings) == 3
        assert startup_warnings(Settings(models_persist=True)) == []
