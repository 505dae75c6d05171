"""Hostname and URL normalization utilities."""

from __future__ import annotations

from urllib.parse import SplitResult

import idna
import tldextract

# Bundled public suffix snapshot only; lookups never touch the network
_extract = tldextract.TLDExtract(suffix_list_urls=())

DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_hostname(value: str) -> str:
    """
    Normalize a hostname to the form used for hashing and suffix checks.

    - Strip whitespace and a trailing dot
    - Lowercase
    - IDNA-encode non-ASCII labels

    Raises ValueError for empty or unencodable hostnames.
    """
    host = (value or "").strip().rstrip(".").lower()
    if not host:
        raise ValueError("empty hostname")
    if not host.isascii():
        try:
            host = idna.encode(host, uts46=True).decode("ascii")
        except (idna.IDNAError, UnicodeError) as exc:
            raise ValueError(f"invalid hostname: {exc}") from exc
    if any(not label for label in host.split(".")):
        raise ValueError("invalid hostname: empty label")
    return host


def normalize_url(parts: SplitResult, host: str) -> str:
    """
    Build the canonical full-URL form of an already parsed URL.

    Scheme and host are lowercased, default ports dropped, an empty path
    becomes "/", and the fragment is discarded. Path and query keep their case.
    """
    scheme = parts.scheme.lower()
    netloc = host
    port = parts.port
    if port and DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    path = parts.path or "/"
    url = f"{scheme}://{netloc}{path}"
    if parts.query:
        url = f"{url}?{parts.query}"
    return url


def strip_www(host: str) -> str:
    if host.startswith("www.") and len(host) > 4:
        return host[4:]
    return host


def host_matches_suffix(host: str, suffix: str) -> bool:
    """True when host equals suffix or is one of its subdomains."""
    if not host or not suffix:
        return False
    return host == suffix or host.endswith("." + suffix)


def registered_domain(value: str) -> str:
    """Return the registrable domain for a hostname (best-effort)."""
    extracted = _extract(value)
    if extracted.domain and extracted.suffix:
        return f"{extracted.domain}.{extracted.suffix}".lower()
    return ""
