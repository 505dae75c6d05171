"""Threat feed updates: fetch, validate and atomically swap snapshots."""

import asyncio
import hashlib
import json
import logging
import time
from typing import Callable, Iterable, Optional
from urllib.parse import urljoin

import aiohttp

from ..constants import THREAT_DATABASE_KEY, UPDATE_STATE_KEY
from ..storage import StateStore
from ..errors import (
    GateWatchError,
    SnapshotValidationError,
    StaleSnapshotError,
    StorageError,
    UpdateTransportError,
)
from .loader import build_snapshot, serialize_snapshot
from .models import ThreatDatabase, UpdateResult, UpdateState

logger = logging.getLogger(__name__)


class UpdateCoordinator:
    """Keeps the engine's threat database current.

    - check_for_update() is cheap and time-gated by update_interval; it is
      what the scheduler calls.
    - update_database() fetches unless an update is already in flight (the
      caller then shares its result) or the previous attempt is younger than
      min_fetch_interval (the previous result is returned).

    A failed update never touches the active snapshot. last_attempt is
    recorded for every fetch; last_success/current_version only on success.
    """

    def __init__(
        self,
        manifest_url: str,
        *,
        get_snapshot: Callable[[], ThreatDatabase],
        swap_snapshot: Callable[[ThreatDatabase], None],
        state: Optional[UpdateState] = None,
        store: Optional[StateStore] = None,
        extra_trusted: Iterable[str] = (),
        update_interval: float = 6 * 60 * 60,
        min_fetch_interval: float = 60.0,
        fetch_timeout: float = 30.0,
        session_factory: Optional[Callable[..., aiohttp.ClientSession]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.manifest_url = manifest_url
        self.state = state or UpdateState()
        self.store = store
        self.extra_trusted = tuple(extra_trusted)
        self.update_interval = update_interval
        self.min_fetch_interval = min_fetch_interval
        self.fetch_timeout = fetch_timeout
        self._get_snapshot = get_snapshot
        self._swap_snapshot = swap_snapshot
        self._session_factory = session_factory
        self._clock = clock
        self._inflight: Optional[asyncio.Task] = None
        self._last_result: Optional[UpdateResult] = None

    @property
    def in_progress(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def last_result(self) -> Optional[UpdateResult]:
        return self._last_result

    async def check_for_update(self) -> UpdateResult:
        """Update only if the refresh interval has elapsed since the last attempt."""
        if not self.in_progress:
            elapsed = self._clock() - self.state.last_attempt
            if elapsed < self.update_interval:
                snapshot = self._get_snapshot()
                logger.debug("Update check skipped (%.0fs since last attempt)", elapsed)
                return UpdateResult(
                    success=True,
                    count=snapshot.entry_count,
                    timestamp=self.state.last_success or None,
                    version=snapshot.version,
                    skipped=True,
                )
        return await self.update_database()

    async def update_database(self, force: bool = False) -> UpdateResult:
        """Fetch and install a new snapshot (see class docstring for gating)."""
        task = self._inflight
        if task is None or task.done():
            elapsed = self._clock() - self.state.last_attempt
            if not force and self._last_result is not None and elapsed < self.min_fetch_interval:
                logger.debug("Update coalesced with previous attempt (%.0fs ago)", elapsed)
                previous = self._last_result
                return UpdateResult(
                    success=previous.success,
                    count=previous.count,
                    timestamp=previous.timestamp,
                    version=previous.version,
                    error=previous.error,
                    skipped=True,
                )
            task = asyncio.ensure_future(self._run_update())
            self._inflight = task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None

    async def _run_update(self) -> UpdateResult:
        self.state.last_attempt = self._clock()
        await self._persist(UPDATE_STATE_KEY, self.state.to_dict())

        current = self._get_snapshot()
        try:
            snapshot = await self._fetch_snapshot()
            if snapshot.version <= current.version:
                raise StaleSnapshotError(
                    f"Feed version {snapshot.version} is not newer than {current.version}"
                )

            self._swap_snapshot(snapshot)
            timestamp = self._clock()
            self.state.last_success = timestamp
            self.state.current_version = snapshot.version
            logger.info(
                "Threat database updated to v%s (%s domains, %s urls, %s trusted gateways)",
                snapshot.version,
                len(snapshot.domain_entries),
                len(snapshot.url_entries),
                len(snapshot.trusted_gateway_suffixes),
            )
            await self._persist(THREAT_DATABASE_KEY, serialize_snapshot(snapshot))
            await self._persist(UPDATE_STATE_KEY, self.state.to_dict())
            result = UpdateResult(
                success=True,
                count=snapshot.entry_count,
                timestamp=timestamp,
                version=snapshot.version,
            )
        except GateWatchError as e:
            logger.warning(f"Threat database update failed: {e}")
            result = self._failure(current, str(e))
        except Exception as e:
            logger.exception("Unexpected error updating threat database")
            result = self._failure(current, str(e) or type(e).__name__)

        self._last_result = result
        return result

    def _failure(self, current: ThreatDatabase, error: str) -> UpdateResult:
        return UpdateResult(
            success=False,
            count=current.entry_count,
            timestamp=self.state.last_success or None,
            version=current.version,
            error=error,
        )

    async def _fetch_snapshot(self) -> ThreatDatabase:
        if not self.manifest_url:
            raise UpdateTransportError("No threat feed URL configured")

        factory = self._session_factory or aiohttp.ClientSession
        timeout = aiohttp.ClientTimeout(total=self.fetch_timeout)
        async with factory(timeout=timeout) as session:
            manifest = self._decode(await self._fetch(session, self.manifest_url), "manifest")
            if not isinstance(manifest, dict):
                raise SnapshotValidationError("Manifest must be a JSON object")

            payload = manifest.get("entries")
            entries_url = manifest.get("entries_url")
            if payload is None and entries_url:
                if not isinstance(entries_url, str):
                    raise SnapshotValidationError("Invalid entries_url")
                raw = await self._fetch(session, urljoin(self.manifest_url, entries_url))
                expected = manifest.get("sha256")
                if expected:
                    actual = hashlib.sha256(raw).hexdigest()
                    if not isinstance(expected, str) or actual != expected.strip().lower():
                        raise SnapshotValidationError("Entry payload checksum mismatch")
                payload = self._decode(raw, "entry payload")

        snapshot = build_snapshot(manifest, payload=payload, extra_trusted=self.extra_trusted)

        # entry_count counts listed entries, before duplicates are collapsed
        expected_count = manifest.get("entry_count")
        listed = _listed_entry_count(manifest if payload is None else payload)
        if expected_count is not None and expected_count != listed:
            raise SnapshotValidationError(
                f"Manifest announces {expected_count} entries, payload lists {listed}"
            )
        return snapshot

    async def _fetch(self, session, url: str) -> bytes:
        try:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise UpdateTransportError(f"HTTP {resp.status} fetching {url}")
                return await resp.read()
        except asyncio.TimeoutError as exc:
            raise UpdateTransportError(f"Timeout fetching {url}") from exc
        except aiohttp.ClientError as exc:
            raise UpdateTransportError(f"Error fetching {url}: {exc}") from exc

    @staticmethod
    def _decode(raw: bytes, what: str):
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SnapshotValidationError(f"Invalid JSON in {what}: {exc}") from exc

    async def _persist(self, key: str, value: dict) -> None:
        if self.store is None or not self.store.connected:
            return
        try:
            await self.store.set(key, value)
        except StorageError as e:
            logger.warning(f"Could not persist {key}, continuing in memory: {e}")


def _listed_entry_count(body: dict) -> int:
    return sum(
        len(body[key]) for key in ("domains", "urls") if isinstance(body.get(key), list)
    )
