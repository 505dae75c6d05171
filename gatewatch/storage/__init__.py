"""Storage modules for GateWatch."""

from .database import StateStore

__all__ = ["StateStore"]
