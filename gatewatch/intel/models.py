"""Data model for the local threat database."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from ..constants import MatchKind, ThreatLevel, ThreatType


@dataclass(frozen=True)
class ThreatEntry:
    """A single hashed threat indicator."""

    hash: str
    type: ThreatType
    level: ThreatLevel
    match_kind: MatchKind

    def to_dict(self) -> dict:
        return {"hash": self.hash, "type": int(self.type), "level": int(self.level)}


@dataclass(frozen=True)
class ThreatDatabase:
    """One immutable, versioned snapshot of the threat feed.

    Snapshots are never mutated after construction; updates build a new one
    and swap the engine's reference.
    """

    version: int = 0
    generated_at: Optional[datetime] = None
    domain_entries: Mapping[str, ThreatEntry] = field(default_factory=dict)
    url_entries: Mapping[str, ThreatEntry] = field(default_factory=dict)
    trusted_gateway_suffixes: frozenset[str] = frozenset()
    # Subset of trusted_gateway_suffixes that came from the feed itself
    feed_trusted_gateways: frozenset[str] = frozenset()

    def __post_init__(self):
        # Freeze the collections even if a caller passes plain dicts/sets
        object.__setattr__(self, "domain_entries", MappingProxyType(dict(self.domain_entries)))
        object.__setattr__(self, "url_entries", MappingProxyType(dict(self.url_entries)))
        object.__setattr__(self, "trusted_gateway_suffixes", frozenset(self.trusted_gateway_suffixes))
        object.__setattr__(self, "feed_trusted_gateways", frozenset(self.feed_trusted_gateways))

    @property
    def entry_count(self) -> int:
        return len(self.domain_entries) + len(self.url_entries)

    def find_domain(self, digest: str) -> Optional[ThreatEntry]:
        return self.domain_entries.get(digest)

    def find_url(self, digest: str) -> Optional[ThreatEntry]:
        return self.url_entries.get(digest)


@dataclass(frozen=True)
class SecurityVerdict:
    """Tri-state classification of one URL.

    secure is True for a verified gateway, False for a listed threat and None
    when the URL could not be classified (with error set for bad input).
    """

    secure: Optional[bool] = None
    type: Optional[ThreatType] = None
    level: Optional[ThreatLevel] = None
    match_kind: Optional[MatchKind] = None
    error: Optional[str] = None

    @classmethod
    def trusted(cls) -> "SecurityVerdict":
        return cls(secure=True)

    @classmethod
    def threat(cls, entry: ThreatEntry) -> "SecurityVerdict":
        return cls(secure=False, type=entry.type, level=entry.level, match_kind=entry.match_kind)

    @classmethod
    def unclassified(cls) -> "SecurityVerdict":
        return cls()

    @classmethod
    def invalid(cls, error: str) -> "SecurityVerdict":
        return cls(secure=None, error=error or "unknown error")

    def to_dict(self) -> dict:
        data = {
            "secure": self.secure,
            "type": str(self.type) if self.type else None,
            "level": str(self.level) if self.level else None,
            "match_kind": str(self.match_kind) if self.match_kind else None,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class UpdateState:
    """Refresh bookkeeping persisted across restarts (epoch seconds)."""

    last_attempt: float = 0.0
    last_success: float = 0.0
    current_version: int = 0

    def to_dict(self) -> dict:
        return {
            "last_attempt": self.last_attempt,
            "last_success": self.last_success,
            "current_version": self.current_version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UpdateState":
        return cls(
            last_attempt=float(data.get("last_attempt") or 0.0),
            last_success=float(data.get("last_success") or 0.0),
            current_version=int(data.get("current_version") or 0),
        )


@dataclass
class UpdateResult:
    """Outcome of an update or update check."""

    success: bool
    count: int = 0
    timestamp: Optional[float] = None
    version: int = 0
    error: Optional[str] = None
    skipped: bool = False  # True when no fetch was performed

    def to_response(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error or "Unknown error updating database"}
        return {"success": True, "count": self.count, "timestamp": self.timestamp}
