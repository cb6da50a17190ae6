"""PricePilot error hierarchy."""

from __future__ import annotations

from typing import Optional


class PricePilotError(Exception):
    """Base error for all PricePilot errors."""
    pass


class ConfigError(PricePilotError):
    """Invalid or missing configuration."""
    pass


class ValidationError(PricePilotError):
    """A billing model failed pre-flight validation.

    Raised before any remote call is attempted. ``item_id`` and ``field``
    identify the offending item (None for model-level problems).
    """

    def __init__(
        self,
        message: str,
        *,
        item_id: Optional[str] = None,
        field: Optional[str] = None,
    ) -> None:
        self.item_id = item_id
        self.field = field
        prefix = ""
        if item_id is not None and field is not None:
            prefix = f"item '{item_id}' field '{field}': "
        elif item_id is not None:
            prefix = f"item '{item_id}': "
        elif field is not None:
            prefix = f"field '{field}': "
        super().__init__(f"{prefix}{message}")


class RemoteCallError(PricePilotError):
    """A single create/update call to the billing provider failed."""

    def __init__(self, message: str, *, operation: str = "", code: Optional[str] = None) -> None:
        self.operation = operation
        self.code = code
        super().__init__(message)


class PartialMeterFailure(RemoteCallError):
    """Product and price were created but the usage meter was not."""
    pass


class CleanupSkip(PricePilotError):
    """The provider refused a deactivation that cleanup must not force.

    Raised when a price is the product's current default price.
    """

    def __init__(self, message: str, *, ref: str = "") -> None:
        self.ref = ref
        super().__init__(message)


class StoreError(PricePilotError):
    """Billing model store read/write failure."""
    pass
