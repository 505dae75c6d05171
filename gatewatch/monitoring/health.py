"""Minimal health/metrics server for GateWatch."""

from __future__ import annotations

import logging
from typing import Callable

from aiohttp import web

logger = logging.getLogger(__name__)


class HealthServer:
    """Serves engine status as JSON (/healthz) and text metrics (/metrics)."""

    def __init__(
        self,
        host: str,
        port: int,
        status_provider: Callable[[], dict],
        enabled: bool = True,
    ):
        self.host = host
        self.port = port
        self.status_provider = status_provider
        self.enabled = enabled
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/metrics", self._handle_metrics)
        return app

    async def start(self):
        """Start the health server."""
        if not self.enabled:
            logger.info("Health server disabled")
            return

        self._runner = web.AppRunner(self.create_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        logger.info("Health server listening on %s:%s", self.host, self.port)

    async def stop(self):
        """Stop the health server."""
        if self._site:
            await self._site.stop()
        if self._runner:
            await self._runner.cleanup()
        self._runner = None
        self._site = None

    def _status(self) -> dict:
        try:
            return dict(self.status_provider() or {})
        except Exception as exc:
            logger.warning("Status provider failed: %s", exc)
            return {"status": "error", "message": str(exc)}

    async def _handle_health(self, request):  # noqa: ANN001
        payload = self._status()
        if "status" not in payload:
            if not payload.get("initialized"):
                payload["status"] = "starting"
            elif payload.get("database_stale"):
                # Still serving, but verdicts come from an outdated feed
                payload["status"] = "stale"
            else:
                payload["status"] = "ok"
        status_code = 503 if payload["status"] == "error" else 200
        return web.json_response(payload, status=status_code)

    async def _handle_metrics(self, request):  # noqa: ANN001
        """Numeric status fields in Prometheus text format."""
        lines = []
        for key, value in self._status().items():
            if isinstance(value, bool):
                value = int(value)
            if isinstance(value, (int, float)):
                metric_key = str(key).replace(".", "_").replace("-", "_")
                lines.append(f"gatewatch_{metric_key} {value}")
        if not lines:
            lines.append('gatewatch_status{state="empty"} 1')
        return web.Response(text="\n".join(lines) + "\n")
