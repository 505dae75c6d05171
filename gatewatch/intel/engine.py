"""Threat matching engine facade."""

import asyncio
import logging
import time
from typing import Optional

from ..config import Config, parse_gateway_list
from ..constants import (
    PRODUCT_NAME,
    PRODUCT_VERSION,
    THREAT_DATABASE_KEY,
    UPDATE_STATE_KEY,
)
from ..storage import StateStore
from ..errors import SnapshotValidationError, StorageError
from .events import SecurityEventLog
from .loader import bootstrap_snapshot, build_snapshot
from .matcher import Matcher
from .models import SecurityVerdict, ThreatDatabase, UpdateResult, UpdateState
from .updater import UpdateCoordinator

logger = logging.getLogger(__name__)

FEATURES = (
    "payment_gateway_validation",
    "phishing_detection",
    "hashed_offline_lookup",
    "threat_feed_updates",
    "threat_reporting",
    "security_event_log",
)

# Database counts as stale once this many refresh intervals pass without success
STALE_AFTER_INTERVALS = 2


class ThreatEngine:
    """Owns the active threat database and update state.

    Usage:
        engine = ThreatEngine(config)
        await engine.init()
        verdict = engine.check_url_security("https://sub.shaparak.ir/pay")
        await engine.check_for_update()
    """

    def __init__(
        self,
        config: Config,
        store: Optional[StateStore] = None,
        session_factory=None,
        clock=None,
    ):
        self.config = config
        self.trusted_gateways = parse_gateway_list(config.trusted_gateways)
        self._clock = clock or time.time
        self.store = store if store is not None else StateStore(config.data_dir / "gatewatch.db")
        self.matcher = Matcher(domain_first=config.match_domain_first)
        self._snapshot: ThreatDatabase = bootstrap_snapshot(self.trusted_gateways)
        self._init_lock = asyncio.Lock()
        self.initialized = False
        self.counters = {"checks": 0, "trusted": 0, "threats": 0, "undetermined": 0, "errors": 0}

        self.updater = UpdateCoordinator(
            config.intel_manifest_url,
            get_snapshot=lambda: self._snapshot,
            swap_snapshot=self._swap,
            store=self.store,
            extra_trusted=self.trusted_gateways,
            update_interval=config.update_interval_minutes * 60,
            min_fetch_interval=config.min_fetch_seconds,
            fetch_timeout=config.fetch_timeout,
            session_factory=session_factory,
            clock=self._clock,
        )
        self.events = SecurityEventLog(self.store, clock=self._clock)

    @property
    def snapshot(self) -> ThreatDatabase:
        return self._snapshot

    @property
    def state(self) -> UpdateState:
        return self.updater.state

    def _swap(self, snapshot: ThreatDatabase) -> None:
        # Single reference assignment; readers see the old or the new snapshot
        self._snapshot = snapshot

    async def init(self) -> None:
        """Load persisted snapshot and update state. Safe to call repeatedly."""
        async with self._init_lock:
            if self.initialized:
                return
            try:
                if not self.store.connected:
                    await self.store.connect()
                await self._load_state()
                await self.events.load()
            except StorageError as e:
                logger.warning(f"Persisted state unavailable, running in memory: {e}")
            self.initialized = True
            logger.info(
                "%s engine ready: threat database v%s (%s entries, %s trusted gateways)",
                PRODUCT_NAME,
                self._snapshot.version,
                self._snapshot.entry_count,
                len(self._snapshot.trusted_gateway_suffixes),
            )

    async def _load_state(self) -> None:
        state_data = await self.store.get(UPDATE_STATE_KEY)
        if isinstance(state_data, dict):
            try:
                self.updater.state = UpdateState.from_dict(state_data)
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring corrupt update state: {e}")

        snapshot_data = await self.store.get(THREAT_DATABASE_KEY)
        if snapshot_data is None:
            logger.info("No persisted threat database; starting from bootstrap snapshot")
            return
        try:
            self._swap(build_snapshot(snapshot_data, extra_trusted=self.trusted_gateways))
        except SnapshotValidationError as e:
            logger.warning(f"Discarding corrupt persisted threat database: {e}")
            await self.store.delete(THREAT_DATABASE_KEY)
            return
        self.updater.state.current_version = self._snapshot.version

    async def close(self) -> None:
        await self.store.close()

    def check_url_security(self, url) -> SecurityVerdict:
        """Classify url against the active snapshot. Never raises."""
        snapshot = self._snapshot
        try:
            verdict = self.matcher.classify(url, snapshot)
        except Exception as e:
            logger.exception("Unexpected error classifying URL")
            verdict = SecurityVerdict.invalid(str(e) or type(e).__name__)

        self.counters["checks"] += 1
        if verdict.error:
            self.counters["errors"] += 1
        elif verdict.secure is True:
            self.counters["trusted"] += 1
        elif verdict.secure is False:
            self.counters["threats"] += 1
        else:
            self.counters["undetermined"] += 1
        return verdict

    async def update_database(self, force: bool = False) -> UpdateResult:
        return await self.updater.update_database(force=force)

    async def check_for_update(self) -> UpdateResult:
        return await self.updater.check_for_update()

    async def record_threat_event(self, url, verdict: SecurityVerdict) -> Optional[dict]:
        return await self.events.record_threat(url, verdict)

    async def report_threat(self, url, threat_type=None) -> dict:
        return await self.events.report_threat(url, threat_type)

    def database_age(self) -> Optional[float]:
        """Seconds since the last successful update, None if there never was one."""
        last_success = self.updater.state.last_success
        if not last_success:
            return None
        return max(0.0, self._clock() - last_success)

    def is_database_stale(self) -> bool:
        if not self.config.intel_manifest_url:
            # Nothing to refresh from; the local database is all there is
            return False
        age = self.database_age()
        if age is None:
            return True
        return age > self.updater.update_interval * STALE_AFTER_INTERVALS

    def status(self) -> dict:
        """Engine status for health checks and the status request. Contains no URLs."""
        snapshot = self._snapshot
        state = self.updater.state
        last = self.updater.last_result
        return {
            "initialized": self.initialized,
            "database_version": snapshot.version,
            "generated_at": snapshot.generated_at.isoformat() if snapshot.generated_at else None,
            "domain_entries": len(snapshot.domain_entries),
            "url_entries": len(snapshot.url_entries),
            "trusted_gateways": len(snapshot.trusted_gateway_suffixes),
            "last_attempt": state.last_attempt,
            "last_success": state.last_success,
            "current_version": state.current_version,
            "update_in_progress": self.updater.in_progress,
            "last_update_error": last.error if last and not last.success else None,
            "database_age_seconds": self.database_age(),
            "database_stale": self.is_database_stale(),
            "security_events": len(self.events.events),
            "threat_reports": len(self.events.reports),
            **{f"{key}_total": value for key, value in self.counters.items()},
        }

    def security_config(self) -> dict:
        return {
            "name": PRODUCT_NAME,
            "version": PRODUCT_VERSION,
            "features": list(FEATURES),
            "supportedGateways": sorted(self._snapshot.trusted_gateway_suffixes),
        }
