"""Centralized constants for GateWatch.

Threat classification enums shared by the snapshot loader, the matcher and
the message mapping. Integer values match the codes used in the threat feed.
"""

from enum import IntEnum

PRODUCT_NAME = "GateWatch"
PRODUCT_VERSION = "2.0.0"

# Trusted payment gateway domains shipped with the product. Subdomains are
# trusted as well.
DEFAULT_TRUSTED_GATEWAYS: tuple[str, ...] = (
    "shaparak.ir",
    "sep.ir",
    "fanava.ir",
    "parsian.com",
    "mellat.ir",
)

# Fixed storage keys for persisted state
THREAT_DATABASE_KEY = "threat_database"
UPDATE_STATE_KEY = "update_state"
SECURITY_EVENTS_KEY = "security_events"
THREAT_REPORTS_KEY = "threat_reports"

# Oldest entries are dropped beyond these sizes
MAX_SECURITY_EVENTS = 100
MAX_THREAT_REPORTS = 1000


class _CodedEnum(IntEnum):
    """IntEnum accepting either its integer code or its lower-case name."""

    @classmethod
    def from_value(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid {cls.__name__}: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise ValueError(f"Invalid {cls.__name__}: {value!r}") from None
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            if key.isdigit():
                return cls.from_value(int(key))
            try:
                return cls[key]
            except KeyError:
                raise ValueError(f"Invalid {cls.__name__}: {value!r}") from None
        raise ValueError(f"Invalid {cls.__name__}: {value!r}")

    def __str__(self) -> str:
        return self.name.lower()


class ThreatType(_CodedEnum):
    """Nature of a listed threat."""

    PHISHING = 1
    FRAUD = 2
    PONZI = 3
    OTHER = 4


class ThreatLevel(_CodedEnum):
    """Severity/confidence of a listed threat."""

    DANGER = 1
    WARNING = 2
    NEUTRAL = 3
    INFO = 4


class MatchKind(_CodedEnum):
    """Whether an entry hashes a bare hostname or a full normalized URL."""

    DOMAIN = 1
    FULL_URL = 2
