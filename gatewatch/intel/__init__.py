"""Threat matching engine for GateWatch."""

from ..errors import (
    GateWatchError,
    SnapshotValidationError,
    StaleSnapshotError,
    StorageError,
    UpdateTransportError,
)
from .engine import ThreatEngine
from .events import SecurityEventLog
from .matcher import Matcher
from .models import SecurityVerdict, ThreatDatabase, ThreatEntry, UpdateResult, UpdateState
from .updater import UpdateCoordinator

__all__ = [
    "ThreatEngine",
    "SecurityEventLog",
    "Matcher",
    "UpdateCoordinator",
    "SecurityVerdict",
    "ThreatDatabase",
    "ThreatEntry",
    "UpdateResult",
    "UpdateState",
    "GateWatchError",
    "SnapshotValidationError",
    "StaleSnapshotError",
    "StorageError",
    "UpdateTransportError",
]
