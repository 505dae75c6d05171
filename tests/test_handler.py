"""Tests for the request/response contract and message mapping."""

import pytest

from gatewatch.constants import MatchKind, ThreatLevel, ThreatType
from gatewatch.handler import (
    CheckSecurityRequest,
    GetSecurityConfigRequest,
    GetSecurityEventsRequest,
    GetStatusRequest,
    GetThreatReportsRequest,
    ReportThreatRequest,
    RequestHandler,
    UnknownActionError,
    UpdateDatabaseRequest,
    parse_request,
)
from gatewatch.intel.engine import ThreatEngine
from gatewatch.intel.hasher import hash_value
from gatewatch.intel.models import SecurityVerdict
from gatewatch.messages import THREAT_MESSAGES, SUSPICIOUS_MESSAGE, get_security_message

from conftest import MANIFEST_URL, FakeFeed, make_manifest, make_payload


def test_parse_request_variants():
    assert parse_request({"action": "checkSecurity", "url": "https://a.ir"}) == CheckSecurityRequest("https://a.ir")
    assert parse_request({"action": "updateDatabase"}) == UpdateDatabaseRequest(force=False)
    assert parse_request({"action": "getStatus"}) == GetStatusRequest()
    assert parse_request({"action": "getSecurityConfig"}) == GetSecurityConfigRequest()
    assert parse_request({"action": "reportThreat", "url": "https://a.ir", "type": "fraud"}) == ReportThreatRequest(
        "https://a.ir", "fraud"
    )
    assert parse_request({"action": "getSecurityEvents"}) == GetSecurityEventsRequest()
    assert parse_request({"action": "getThreatReports"}) == GetThreatReportsRequest()


@pytest.mark.parametrize("message", [None, "checkSecurity", {}, {"action": "deleteEverything"}])
def test_parse_request_rejects_unknown(message):
    with pytest.raises(UnknownActionError):
        parse_request(message)


def test_message_for_trusted_gateway():
    message = get_security_message(SecurityVerdict.trusted())
    assert message["className"] == "status_title_ok"
    assert message["icon"].endswith("icon_ok.png")


@pytest.mark.parametrize("threat_type", list(ThreatType))
def test_message_for_each_threat_type(threat_type):
    verdict = SecurityVerdict(
        secure=False, type=threat_type, level=ThreatLevel.WARNING, match_kind=MatchKind.FULL_URL
    )
    message = get_security_message(verdict)
    title, text = THREAT_MESSAGES.get(threat_type, SUSPICIOUS_MESSAGE)
    assert (message["title"], message["text"]) == (title, text)
    assert message["className"] == "status_title_danger"
    assert message["level"] == "Warning"
    assert message["match"] == "Full URL"


def test_message_for_unclassified_and_invalid():
    unclassified = get_security_message(SecurityVerdict.unclassified())
    invalid = get_security_message(SecurityVerdict.invalid("invalid URL"))
    assert unclassified["className"] == "status_title_nok"
    assert unclassified["title"] == "This page is not a payment gateway"
    assert invalid["title"] == "Invalid URL"
    assert get_security_message(None)["title"] == "Status unknown"


def _handler(config, clock):
    payload = make_payload(domains=[("evil-shaparak-clone.ir", 1, 1)])
    feed = FakeFeed({MANIFEST_URL: (200, make_manifest(4, payload))})
    engine = ThreatEngine(config, session_factory=feed.session, clock=clock)
    return RequestHandler(engine), feed


@pytest.mark.asyncio
async def test_handle_check_security_initializes_engine(config, clock):
    handler, _ = _handler(config, clock)
    try:
        response = await handler.handle({"action": "checkSecurity", "url": "https://sub.shaparak.ir/x"})
        assert handler.engine.initialized
        assert response["securityResult"] == {
            "secure": True,
            "type": None,
            "level": None,
            "match_kind": None,
        }
        assert response["message"]["className"] == "status_title_ok"
    finally:
        await handler.engine.close()


@pytest.mark.asyncio
async def test_handle_check_security_with_bad_url(config, clock):
    handler, _ = _handler(config, clock)
    try:
        response = await handler.handle({"action": "checkSecurity", "url": None})
        assert response["securityResult"]["secure"] is None
        assert response["securityResult"]["error"]
        assert response["message"]["title"] == "Invalid URL"
    finally:
        await handler.engine.close()


@pytest.mark.asyncio
async def test_handle_update_then_check(config, clock):
    handler, feed = _handler(config, clock)
    try:
        update = await handler.handle({"action": "updateDatabase"})
        assert update == {"success": True, "count": 1, "timestamp": clock.now}

        response = await handler.handle({"action": "checkSecurity", "url": "https://evil-shaparak-clone.ir/pay"})
        assert response["securityResult"]["secure"] is False
        assert response["securityResult"]["type"] == "phishing"
        assert response["message"]["type"] == "Phishing"
    finally:
        await handler.engine.close()


@pytest.mark.asyncio
async def test_handle_update_failure(config, clock):
    handler, feed = _handler(config, clock)
    feed.routes[MANIFEST_URL] = (500, b"")
    try:
        response = await handler.handle({"action": "updateDatabase"})
        assert response["success"] is False
        assert "500" in response["error"]
        assert set(response) == {"success", "error"}
    finally:
        await handler.engine.close()


@pytest.mark.asyncio
async def test_handle_status_and_config(config, clock):
    handler, _ = _handler(config, clock)
    try:
        status = await handler.handle({"action": "getStatus"})
        assert status["database_version"] == 0
        security = await handler.handle({"action": "getSecurityConfig"})
        assert "shaparak.ir" in security["supportedGateways"]
    finally:
        await handler.engine.close()


@pytest.mark.asyncio
async def test_handle_unknown_action(config, clock):
    handler, _ = _handler(config, clock)
    response = await handler.handle({"action": "report"})
    assert "error" in response
    assert not handler.engine.initialized


@pytest.mark.asyncio
async def test_threat_check_is_logged_without_url(config, clock):
    handler, _ = _handler(config, clock)
    try:
        await handler.handle({"action": "updateDatabase"})
        await handler.handle({"action": "checkSecurity", "url": "https://evil-shaparak-clone.ir/pay"})
        await handler.handle({"action": "checkSecurity", "url": "https://sub.shaparak.ir/x"})

        response = await handler.handle({"action": "getSecurityEvents"})

        assert len(response["events"]) == 1
        event = response["events"][0]
        assert event["url_hash"] == hash_value("https://evil-shaparak-clone.ir/pay")
        assert event["type"] == "phishing"
        assert event["match_kind"] == "domain"
        assert "evil-shaparak-clone" not in str(response)
    finally:
        await handler.engine.close()


@pytest.mark.asyncio
async def test_handle_report_threat(config, clock):
    handler, _ = _handler(config, clock)
    try:
        response = await handler.handle(
            {"action": "reportThreat", "url": "https://fake-bank.example.com/", "type": "ponzi"}
        )
        assert response["success"] is True
        assert response["report"]["type"] == "ponzi"

        default_type = await handler.handle({"action": "reportThreat", "url": "https://other.example.com/"})
        assert default_type["report"]["type"] == "other"

        rejected = await handler.handle({"action": "reportThreat"})
        assert rejected["success"] is False
        assert rejected["error"]

        reports = await handler.handle({"action": "getThreatReports"})
        assert [r["url_hash"] for r in reports["reports"]] == [
            hash_value("https://fake-bank.example.com/"),
            hash_value("https://other.example.com/"),
        ]
        security = await handler.handle({"action": "getSecurityConfig"})
        assert "threat_reporting" in security["features"]
    finally:
        await handler.engine.close()
