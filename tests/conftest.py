"""Global pytest configuration and shared fakes."""

from __future__ import annotations

import asyncio
import inspect
import json
from collections.abc import AsyncGenerator

import pytest

from gatewatch.config import Config
from gatewatch.intel.hasher import hash_value


@pytest.fixture(scope="session")
def event_loop() -> AsyncGenerator[asyncio.AbstractEventLoop, None]:
    """Provide a shared event loop for async tests and fixtures."""

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        loop.close()


def _get_loop(request: pytest.FixtureRequest) -> asyncio.AbstractEventLoop:
    try:
        loop = request.getfixturevalue("event_loop")
    except pytest.FixtureLookupError:
        loop = asyncio.new_event_loop()
    if loop.is_closed():
        loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    return loop


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):  # type: ignore[override]
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        testargs = {
            name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
        }
        loop = testargs.get("event_loop") or asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        loop.run_until_complete(pyfuncitem.obj(**testargs))
        return True
    return None


@pytest.hookimpl(tryfirst=True)
def pytest_fixture_setup(fixturedef, request):  # type: ignore[override]
    func = fixturedef.func
    if inspect.iscoroutinefunction(func):
        loop = _get_loop(request)
        kwargs = {arg: request.getfixturevalue(arg) for arg in fixturedef.argnames}
        return loop.run_until_complete(func(**kwargs))
    return None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test as requiring asyncio support")


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResponse:
    def __init__(self, status: int, body: bytes):
        self.status = status
        self._body = body

    async def read(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeFeed:
    """Serves canned responses by URL and records every request.

    routes maps URL -> (status, body) where body is a dict (sent as JSON),
    bytes, or an exception instance to raise. gate, when set, is awaited
    before each response so tests can hold a fetch in flight.
    """

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.get_calls: list[str] = []
        self.sessions_opened = 0
        self.gate: asyncio.Event | None = None

    def session(self, **kwargs):
        self.sessions_opened += 1
        return _FakeSession(self)


class _FakeSession:
    def __init__(self, feed: FakeFeed):
        self._feed = feed

    def get(self, url, **kwargs):
        self._feed.get_calls.append(url)
        return _PendingResponse(self._feed, url)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _PendingResponse:
    def __init__(self, feed: FakeFeed, url: str):
        self._feed = feed
        self._url = url

    async def __aenter__(self):
        if self._feed.gate is not None:
            await self._feed.gate.wait()
        status, body = self._feed.routes.get(self._url, (404, b"not found"))
        if isinstance(body, BaseException):
            raise body
        if isinstance(body, (dict, list)):
            body = json.dumps(body).encode()
        return FakeResponse(status, body)

    async def __aexit__(self, exc_type, exc, tb):
        return False


MANIFEST_URL = "https://feed.example.org/v1/manifest.json"
ENTRIES_URL = "https://feed.example.org/v1/entries.json"


def make_payload(domains=(), urls=(), trusted=()) -> dict:
    """Build an entry payload from plaintext (value, type, level) tuples."""
    return {
        "domains": [{"hash": hash_value(v), "type": t, "level": lvl} for v, t, lvl in domains],
        "urls": [{"hash": hash_value(v), "type": t, "level": lvl} for v, t, lvl in urls],
        "trusted_gateways": list(trusted),
    }


def make_manifest(version: int, payload: dict) -> dict:
    return {"version": version, "generated_at": "2026-10-01T12:00:00Z", "entries": payload}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        intel_manifest_url=MANIFEST_URL,
        update_interval_minutes=60,
        min_fetch_seconds=30,
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        health_enabled=False,
    )
