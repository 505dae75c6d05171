"""Monitoring endpoints for GateWatch."""

from .health import HealthServer

__all__ = ["HealthServer"]
