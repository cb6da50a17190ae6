"""Billing provider reconciliation: planning, execution, cleanup, storage."""
