"""PricePilot — billing model classification and provider reconciliation."""

__version__ = "0.4.0"
