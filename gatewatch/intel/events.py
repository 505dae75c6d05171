"""Security event log and user threat reports.

Both are kept in memory and mirrored to the state store. Entries carry only
the SHA-256 of the URL, never the URL itself.
"""

import logging
import time
from typing import Callable, Optional

from ..constants import (
    MAX_SECURITY_EVENTS,
    MAX_THREAT_REPORTS,
    SECURITY_EVENTS_KEY,
    THREAT_REPORTS_KEY,
    ThreatType,
)
from ..errors import StorageError
from ..storage import StateStore
from .hasher import hash_value
from .models import SecurityVerdict

logger = logging.getLogger(__name__)


class SecurityEventLog:
    """Capped history of detected threats plus user-submitted reports."""

    def __init__(
        self,
        store: Optional[StateStore] = None,
        *,
        max_events: int = MAX_SECURITY_EVENTS,
        max_reports: int = MAX_THREAT_REPORTS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.max_events = max_events
        self.max_reports = max_reports
        self._clock = clock
        self._events: list[dict] = []
        self._reports: list[dict] = []

    @property
    def events(self) -> list[dict]:
        return list(self._events)

    @property
    def reports(self) -> list[dict]:
        return list(self._reports)

    async def load(self) -> None:
        """Restore persisted events and reports. Corrupt values are dropped."""
        if self.store is None:
            return
        self._events = _valid_records(await self.store.get(SECURITY_EVENTS_KEY))[-self.max_events:]
        self._reports = _valid_records(await self.store.get(THREAT_REPORTS_KEY))[-self.max_reports:]

    async def record_threat(self, url: str, verdict: SecurityVerdict) -> Optional[dict]:
        """Append a detection event for a threat verdict; other verdicts are ignored."""
        if verdict.secure is not False:
            return None
        event = {
            "url_hash": hash_value(str(url).strip()),
            "type": str(verdict.type),
            "level": str(verdict.level),
            "match_kind": str(verdict.match_kind),
            "timestamp": self._clock(),
            "handled": False,
        }
        self._events.append(event)
        if len(self._events) > self.max_events:
            del self._events[: len(self._events) - self.max_events]
        await self._persist(SECURITY_EVENTS_KEY, self._events)
        return event

    async def report_threat(self, url, threat_type=ThreatType.OTHER) -> dict:
        """Store a user report about url.

        Raises:
            ValueError: for an empty url or an unknown threat type.
        """
        if not isinstance(url, str) or not url.strip():
            raise ValueError("A URL is required to report a threat")
        kind = ThreatType.from_value(threat_type if threat_type is not None else ThreatType.OTHER)
        report = {
            "url_hash": hash_value(url.strip()),
            "type": str(kind),
            "reported_at": self._clock(),
        }
        self._reports.append(report)
        if len(self._reports) > self.max_reports:
            del self._reports[: len(self._reports) - self.max_reports]
        await self._persist(THREAT_REPORTS_KEY, self._reports)
        logger.info("Threat reported (%s, %s...)", kind, report["url_hash"][:12])
        return report

    async def _persist(self, key: str, records: list[dict]) -> None:
        if self.store is None or not self.store.connected:
            return
        try:
            await self.store.set(key, records)
        except StorageError as e:
            logger.warning(f"Could not persist {key}: {e}")


def _valid_records(value) -> list[dict]:
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning("Ignoring corrupt persisted records: expected a list")
        return []
    return [item for item in value if isinstance(item, dict)]
