"""Request/response contract between the host messaging layer and the engine.

Incoming messages are plain dicts tagged by "action". They are parsed into
request dataclasses and dispatched to typed engine operations; responses are
plain dicts ready to be sent back over whatever transport the host uses.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from .intel.engine import ThreatEngine
from .intel.models import SecurityVerdict
from .messages import get_security_message

logger = logging.getLogger(__name__)

ACTION_CHECK_SECURITY = "checkSecurity"
ACTION_UPDATE_DATABASE = "updateDatabase"
ACTION_GET_STATUS = "getStatus"
ACTION_GET_SECURITY_CONFIG = "getSecurityConfig"
ACTION_REPORT_THREAT = "reportThreat"
ACTION_GET_SECURITY_EVENTS = "getSecurityEvents"
ACTION_GET_THREAT_REPORTS = "getThreatReports"


class UnknownActionError(ValueError):
    """Raised for messages that do not name a supported action."""


@dataclass(frozen=True)
class CheckSecurityRequest:
    url: object


@dataclass(frozen=True)
class UpdateDatabaseRequest:
    force: bool = False


@dataclass(frozen=True)
class GetStatusRequest:
    pass


@dataclass(frozen=True)
class GetSecurityConfigRequest:
    pass


@dataclass(frozen=True)
class ReportThreatRequest:
    url: object
    type: object = None


@dataclass(frozen=True)
class GetSecurityEventsRequest:
    pass


@dataclass(frozen=True)
class GetThreatReportsRequest:
    pass


Request = Union[
    CheckSecurityRequest,
    UpdateDatabaseRequest,
    GetStatusRequest,
    GetSecurityConfigRequest,
    ReportThreatRequest,
    GetSecurityEventsRequest,
    GetThreatReportsRequest,
]


def parse_request(message) -> Request:
    """Turn a raw {action, ...} message into a typed request."""
    if not isinstance(message, dict):
        raise UnknownActionError("Message must be an object")
    action = message.get("action")
    if action == ACTION_CHECK_SECURITY:
        # URL validity is the matcher's concern; keep whatever was sent
        return CheckSecurityRequest(url=message.get("url"))
    if action == ACTION_UPDATE_DATABASE:
        return UpdateDatabaseRequest(force=bool(message.get("force", False)))
    if action == ACTION_GET_STATUS:
        return GetStatusRequest()
    if action == ACTION_GET_SECURITY_CONFIG:
        return GetSecurityConfigRequest()
    if action == ACTION_REPORT_THREAT:
        return ReportThreatRequest(url=message.get("url"), type=message.get("type"))
    if action == ACTION_GET_SECURITY_EVENTS:
        return GetSecurityEventsRequest()
    if action == ACTION_GET_THREAT_REPORTS:
        return GetThreatReportsRequest()
    raise UnknownActionError(f"Unknown action: {action!r}")


class RequestHandler:
    """Dispatches parsed requests to a ThreatEngine."""

    def __init__(self, engine: ThreatEngine):
        self.engine = engine

    async def handle(self, message) -> dict:
        """Handle one raw message. Always returns a response dict."""
        try:
            request = parse_request(message)
        except UnknownActionError as e:
            logger.warning(f"Rejected message: {e}")
            return {"error": str(e)}

        if not self.engine.initialized:
            await self.engine.init()

        if isinstance(request, CheckSecurityRequest):
            return await self.check_security(request.url)
        if isinstance(request, UpdateDatabaseRequest):
            return await self.update_database(force=request.force)
        if isinstance(request, GetStatusRequest):
            return self.engine.status()
        if isinstance(request, GetSecurityConfigRequest):
            return self.engine.security_config()
        if isinstance(request, ReportThreatRequest):
            return await self.report_threat(request.url, request.type)
        if isinstance(request, GetSecurityEventsRequest):
            return {"events": self.engine.events.events}
        if isinstance(request, GetThreatReportsRequest):
            return {"reports": self.engine.events.reports}
        raise AssertionError(f"Unhandled request type: {type(request).__name__}")

    async def check_security(self, url) -> dict:
        verdict = self.engine.check_url_security(url)
        if verdict.secure is False:
            await self.engine.record_threat_event(url, verdict)
        try:
            message = get_security_message(verdict)
        except Exception as e:
            logger.error(f"Error building security message: {e}")
            message = get_security_message(SecurityVerdict.invalid(str(e)))
        return {"securityResult": verdict.to_dict(), "message": message}

    async def update_database(self, force: bool = False) -> dict:
        result = await self.engine.update_database(force=force)
        return result.to_response()

    async def report_threat(self, url, threat_type=None) -> dict:
        try:
            report = await self.engine.report_threat(url, threat_type)
        except ValueError as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "report": report}
