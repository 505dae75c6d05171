"""Human-readable messages derived from security verdicts."""

from __future__ import annotations

from typing import Optional

from .constants import MatchKind, ThreatLevel, ThreatType
from .intel.models import SecurityVerdict

ICON_OK = "/assets/images/icon_ok.png"
ICON_DANGER = "/assets/images/icon_danger.png"
ICON_NEUTRAL = "/assets/images/icon_neutral.png"
ICON_DEFAULT = "/assets/images/icon_128.png"

TYPE_NAMES = {
    ThreatType.PHISHING: "Phishing",
    ThreatType.FRAUD: "Fraud",
    ThreatType.PONZI: "Ponzi scheme",
    ThreatType.OTHER: "Other",
}

LEVEL_NAMES = {
    ThreatLevel.DANGER: "Danger",
    ThreatLevel.WARNING: "Warning",
    ThreatLevel.NEUTRAL: "Neutral",
    ThreatLevel.INFO: "Info",
}

MATCH_NAMES = {
    MatchKind.DOMAIN: "Domain",
    MatchKind.FULL_URL: "Full URL",
}

# (title, text) per threat type
THREAT_MESSAGES = {
    ThreatType.PHISHING: (
        "Warning: fake payment gateway",
        "This payment gateway is fake and is trying to steal your information",
    ),
    ThreatType.FRAUD: (
        "Warning: fraud",
        "This site was created for fraud",
    ),
    ThreatType.PONZI: (
        "Warning: Ponzi scheme",
        "This site is associated with Ponzi schemes and financial fraud",
    ),
}
SUSPICIOUS_MESSAGE = (
    "Warning: suspicious site",
    "This site is on the list of suspicious sites",
)


def type_name(value: Optional[ThreatType]) -> str:
    return TYPE_NAMES.get(value, "Unknown")


def level_name(value: Optional[ThreatLevel]) -> str:
    return LEVEL_NAMES.get(value, "Unknown")


def match_name(value: Optional[MatchKind]) -> str:
    return MATCH_NAMES.get(value, "Unknown")


def get_security_message(verdict: Optional[SecurityVerdict]) -> dict:
    """Map a verdict to the {title, text, icon, className} shown to the user."""
    if not isinstance(verdict, SecurityVerdict):
        return {
            "title": "Status unknown",
            "text": "Not enough information is available to check this page",
            "icon": ICON_NEUTRAL,
            "className": "status_title_nok",
        }

    if verdict.secure is True:
        return {
            "title": "Secure payment gateway, you can trust it",
            "text": "This payment gateway is verified and secure",
            "icon": ICON_OK,
            "className": "status_title_ok",
        }

    if verdict.secure is False:
        title, text = THREAT_MESSAGES.get(verdict.type, SUSPICIOUS_MESSAGE)
        return {
            "title": title,
            "text": text,
            "icon": ICON_DANGER,
            "className": "status_title_danger",
            "type": type_name(verdict.type),
            "level": level_name(verdict.level),
            "match": match_name(verdict.match_kind),
        }

    if verdict.error:
        return {
            "title": "Invalid URL",
            "text": "The URL could not be verified",
            "icon": ICON_NEUTRAL,
            "className": "status_title_nok",
        }

    return {
        "title": "This page is not a payment gateway",
        "text": "Only trust a payment page when the green check mark is shown",
        "icon": ICON_DEFAULT,
        "className": "status_title_nok",
    }
