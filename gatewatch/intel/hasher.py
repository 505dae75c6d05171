"""One-way digests for threat feed lookups.

Entries are stored and compared as SHA-256 hex digests so a lookup never
has to keep the plaintext hostname or URL around.
"""

import hashlib
import re

DIGEST_LENGTH = 64
_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def hash_value(value: str) -> str:
    """Return the lowercase hex SHA-256 digest of a normalized string."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def is_valid_digest(value) -> bool:
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))
