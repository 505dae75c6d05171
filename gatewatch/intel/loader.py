"""Threat database loader: parses, validates and serializes snapshots."""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from ..config import parse_gateway_list
from ..constants import MatchKind, ThreatLevel, ThreatType
from ..utils.domains import normalize_hostname, registered_domain
from ..errors import SnapshotValidationError
from .hasher import is_valid_digest
from .models import ThreatDatabase, ThreatEntry

logger = logging.getLogger(__name__)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch number into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise SnapshotValidationError(f"Invalid generated_at: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as exc:
            raise SnapshotValidationError(f"Invalid generated_at: {value!r}") from exc
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise SnapshotValidationError(f"Invalid generated_at: {value!r}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise SnapshotValidationError(f"Invalid generated_at: {value!r}")


def _parse_version(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        raise SnapshotValidationError(f"Invalid version: {value!r}")
    if value < 0:
        raise SnapshotValidationError(f"Invalid version: {value!r}")
    return value


def _parse_entries(raw, match_kind: MatchKind, collection: str) -> dict[str, ThreatEntry]:
    if raw is None:
        return {}
    if not isinstance(raw, list):
        raise SnapshotValidationError(f"'{collection}' must be a list")

    entries: dict[str, ThreatEntry] = {}
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise SnapshotValidationError(f"{collection}[{index}] is not an object")
        digest = item.get("hash")
        if isinstance(digest, str):
            digest = digest.strip().lower()
        if not is_valid_digest(digest):
            raise SnapshotValidationError(f"{collection}[{index}] has an invalid hash")
        try:
            threat_type = ThreatType.from_value(item.get("type"))
            level = ThreatLevel.from_value(item.get("level"))
        except ValueError as exc:
            raise SnapshotValidationError(f"{collection}[{index}]: {exc}") from exc

        # Last occurrence wins for duplicate hashes
        entries[digest] = ThreatEntry(hash=digest, type=threat_type, level=level, match_kind=match_kind)
    return entries


def _parse_trusted(raw) -> frozenset[str]:
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise SnapshotValidationError("'trusted_gateways' must be a list")

    suffixes: set[str] = set()
    for value in raw:
        if not isinstance(value, str):
            raise SnapshotValidationError(f"Invalid trusted gateway: {value!r}")
        try:
            suffix = normalize_hostname(value)
        except ValueError as exc:
            raise SnapshotValidationError(f"Invalid trusted gateway {value!r}: {exc}") from exc
        # A bare public suffix ("ir", "co.uk") would trust a whole TLD
        if not registered_domain(suffix):
            raise SnapshotValidationError(f"Trusted gateway is not a registrable domain: {value!r}")
        suffixes.add(suffix)
    return frozenset(suffixes)


def build_snapshot(
    data: dict,
    *,
    payload: Optional[dict] = None,
    extra_trusted: Iterable[str] = (),
) -> ThreatDatabase:
    """Build a validated snapshot.

    Args:
        data: Object carrying version/generated_at (a manifest or a
            persisted snapshot). Entry collections are read from it when
            payload is not given.
        payload: Optional separate entry payload (domains/urls/trusted_gateways).
        extra_trusted: Locally configured trusted gateways, always included.
            Invalid ones are logged and skipped.

    Raises:
        SnapshotValidationError: if anything is malformed.
    """
    if not isinstance(data, dict):
        raise SnapshotValidationError("Threat database must be a JSON object")
    body = data if payload is None else payload
    if not isinstance(body, dict):
        raise SnapshotValidationError("Threat payload must be a JSON object")
    if "version" not in data:
        raise SnapshotValidationError("Missing version")

    version = _parse_version(data.get("version"))
    generated_at = parse_timestamp(data.get("generated_at"))
    domain_entries = _parse_entries(body.get("domains"), MatchKind.DOMAIN, "domains")
    url_entries = _parse_entries(body.get("urls"), MatchKind.FULL_URL, "urls")
    feed_trusted = _parse_trusted(body.get("trusted_gateways"))
    # Local gateways are merged on every load, never persisted with the feed
    local_trusted = frozenset(parse_gateway_list(extra_trusted))

    for digest in list(url_entries):
        domain_entry = domain_entries.get(digest)
        if domain_entry is None:
            continue
        url_entry = url_entries[digest]
        if (domain_entry.type, domain_entry.level) != (url_entry.type, url_entry.level):
            logger.warning(
                "Conflicting entry for %s... in domains and urls; keeping the domain entry",
                digest[:12],
            )
            del url_entries[digest]

    return ThreatDatabase(
        version=version,
        generated_at=generated_at,
        domain_entries=domain_entries,
        url_entries=url_entries,
        trusted_gateway_suffixes=feed_trusted | local_trusted,
        feed_trusted_gateways=feed_trusted,
    )


def bootstrap_snapshot(trusted_gateways: Iterable[str]) -> ThreatDatabase:
    """Empty version-0 snapshot used on first run."""
    return build_snapshot({"version": 0}, extra_trusted=trusted_gateways)


def serialize_snapshot(snapshot: ThreatDatabase) -> dict:
    """Serialize a snapshot to the persisted JSON layout."""
    return {
        "version": snapshot.version,
        "generated_at": snapshot.generated_at.isoformat() if snapshot.generated_at else None,
        "domains": [entry.to_dict() for entry in snapshot.domain_entries.values()],
        "urls": [entry.to_dict() for entry in snapshot.url_entries.values()],
        "trusted_gateways": sorted(snapshot.feed_trusted_gateways),
    }
