"""Shared helpers for GateWatch."""
