"""Orchestration core: tokens, approvals, fees, execution and redemption analytics."""
