"""Centralized settings for the PricePilot CLI and API.

Reads environment variables with sensible defaults. Distinguishes dev vs prod
mode. Never exposes secrets in repr or serialization.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


def _bool_env(key: str, default: bool) -> bool:
    """Parse a 0/1 env var to bool."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip() in ("1", "true", "yes", "True", "TRUE")


def _int_env(key: str, default: int) -> int:
    """Parse an int env var with fallback."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable configuration. Safe to log; the Stripe key lives in StripeConfig."""

    # ── Core ───────────────────────────────────────────────────────
    env: str = "dev"
    bind: str = "127.0.0.1"
    port: int = 8080
    allow_nonlocal: bool = False
    enable_docs: bool = True

    # ── Persistence ────────────────────────────────────────────────
    data_dir: str = "./.pricepilot"
    models_persist: bool = False

    # ── Logging ────────────────────────────────────────────────────
    log_format: str = "text"

    # ── Stripe ─────────────────────────────────────────────────────
    stripe_enabled: bool = False
    use_mock_stripe: bool = False

    @property
    def models_path(self) -> str:
        return os.path.join(self.data_dir, "models.jsonl")

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.env!r}, bind={self.bind!r}, port={self.port}, "
            f"enable_docs={self.enable_docs}, data_dir={self.data_dir!r}, "
            f"models_persist={self.models_persist}, log_format={self.log_format!r}, "
            f"stripe_enabled={self.stripe_enabled}, use_mock_stripe={self.use_mock_stripe})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "env": self.env,
            "bind": self.bind,
            "port": self.port,
            "allow_nonlocal": self.allow_nonlocal,
            "enable_docs": self.enable_docs,
            "data_dir": self.data_dir,
            "models_persist": self.models_persist,
            "log_format": self.log_format,
            "stripe_enabled": self.stripe_enabled,
            "use_mock_stripe": self.use_mock_stripe,
        }


def load_settings(
    bind: Optional[str] = None,
    port: Optional[int] = None,
    **overrides: Any,
) -> Settings:
    """Load settings from environment with optional overrides.

    Args:
        bind: Override bind host
        port: Override port
        **overrides: Additional field overrides

    Returns:
        Settings instance
    """
    env = overrides.get("env", os.environ.get("PRICEPILOT_ENV", "dev"))
    current = Settings(
        env=env,
        bind=os.environ.get("PRICEPILOT_BIND", "127.0.0.1"),
        port=_int_env("PRICEPILOT_PORT", 8080),
        allow_nonlocal=_bool_env("PRICEPILOT_ALLOW_NONLOCAL", False),
        enable_docs=_bool_env("PRICEPILOT_ENABLE_DOCS", env != "prod"),
        data_dir=os.environ.get("PRICEPILOT_DATA_DIR", "./.pricepilot"),
        models_persist=_bool_env("PRICEPILOT_MODELS_PERSIST", False),
        log_format=os.environ.get("PRICEPILOT_LOG_FORMAT", "text"),
        stripe_enabled=_bool_env("PRICEPILOT_STRIPE_ENABLED", False),
        use_mock_stripe=_bool_env("PRICEPILOT_USE_MOCK_STRIPE", False),
    ).to_dict()

    if bind is not None:
        current["bind"] = bind
    if port is not None:
        current["port"] = port
    current.update(overrides)
    return Settings(**current)


def validate_host(host: str, allow_nonlocal: bool) -> None:
    """Refuse to bind to non-localhost unless explicitly allowed."""
    local_hosts = {"127.0.0.1", "localhost", "::1"}
    if host not in local_hosts and not allow_nonlocal:
        raise ValueError(
            f"Refusing to bind to non-local host '{host}'. "
            f"PricePilot API is designed for local use only. "
            f"Pass --allow-nonlocal to override this safety check."
        )


def startup_warnings(settings: Settings) -> List[str]:
    """Warnings about potentially surprising settings."""
    warnings = []
    if settings.allow_nonlocal:
        warnings.append("Non-local binding enabled — ensure you have proper firewall rules.")
    if not settings.models_persist:
        warnings.append("Model persistence is off; saved models are lost on restart.")
    if settings.stripe_enabled and settings.use_mock_stripe:
        warnings.append("Stripe enabled but the mock client is in use; nothing reaches Stripe.")
    return warnings
