"""URL classification against a threat database snapshot."""

import logging
from urllib.parse import urlsplit

from ..utils.domains import host_matches_suffix, normalize_hostname, normalize_url, strip_www
from .hasher import hash_value
from .models import SecurityVerdict, ThreatDatabase

logger = logging.getLogger(__name__)

INVALID_URL = "invalid URL"


class Matcher:
    """Classifies URLs as trusted gateway, listed threat or unclassified.

    Order of checks:
    1. Trusted gateway suffix over https (short-circuits threat lookup)
    2. Domain hash in domain entries
    3. Full normalized URL hash in URL entries

    With domain_first=False the URL lookup runs before the domain lookup.
    """

    def __init__(self, domain_first: bool = True):
        self.domain_first = domain_first

    def classify(self, raw_url, snapshot: ThreatDatabase) -> SecurityVerdict:
        if not isinstance(raw_url, str) or not raw_url.strip():
            return SecurityVerdict.invalid(INVALID_URL)

        try:
            parts = urlsplit(raw_url.strip())
            # Accessing port validates it
            parts.port
            host = normalize_hostname(parts.hostname or "")
        except ValueError:
            return SecurityVerdict.invalid(INVALID_URL)
        if not parts.scheme:
            return SecurityVerdict.invalid(INVALID_URL)

        scheme = parts.scheme.lower()
        if scheme == "https" and self.is_trusted_host(host, snapshot):
            return SecurityVerdict.trusted()

        lookups = [self._match_domain, self._match_url]
        if not self.domain_first:
            lookups.reverse()
        for lookup in lookups:
            verdict = lookup(parts, host, snapshot)
            if verdict is not None:
                return verdict

        return SecurityVerdict.unclassified()

    @staticmethod
    def is_trusted_host(host: str, snapshot: ThreatDatabase) -> bool:
        return any(host_matches_suffix(host, suffix) for suffix in snapshot.trusted_gateway_suffixes)

    @staticmethod
    def domain_candidates(host: str) -> list[str]:
        candidates = [host]
        bare = strip_www(host)
        if bare != host:
            candidates.append(bare)
        return candidates

    def _match_domain(self, parts, host: str, snapshot: ThreatDatabase):
        for candidate in self.domain_candidates(host):
            entry = snapshot.find_domain(hash_value(candidate))
            if entry:
                return SecurityVerdict.threat(entry)
        return None

    def _match_url(self, parts, host: str, snapshot: ThreatDatabase):
        entry = snapshot.find_url(hash_value(normalize_url(parts, host)))
        if entry:
            return SecurityVerdict.threat(entry)
        return None
