"""Main entry point for the GateWatch threat matching service.

Usage:
    gatewatch run                      # update worker + health server
    gatewatch check https://sub.shaparak.ir/pay
    gatewatch update [--force]
    gatewatch status
"""

import argparse
import asyncio
import json
import logging
import signal
import sys

from .config import Config, load_config, validate_config
from .handler import RequestHandler
from .intel.engine import ThreatEngine
from .monitoring import HealthServer

logger = logging.getLogger(__name__)

# How often the update worker wakes up; the engine decides whether to fetch.
CHECK_INTERVAL_SECONDS = 60


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


class GateWatchService:
    """Runs the engine with a periodic update trigger and a health server."""

    def __init__(self, config: Config, check_interval: float = CHECK_INTERVAL_SECONDS):
        self.config = config
        self.check_interval = check_interval
        self.engine = ThreatEngine(config)
        self.handler = RequestHandler(self.engine)
        self.health = HealthServer(
            host=config.health_host,
            port=config.health_port,
            status_provider=self.engine.status,
            enabled=config.health_enabled,
        )
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stopped = asyncio.Event()

    async def start(self):
        """Initialize the engine and run until stop() is called."""
        logger.info("Starting GateWatch...")
        await self.engine.init()
        await self.health.start()

        self._running = True
        self._tasks = [asyncio.create_task(self._update_worker())]
        await self._stopped.wait()

    async def stop(self):
        """Stop workers and release resources. Safe to call more than once."""
        if self._running:
            logger.info("Stopping GateWatch...")
        self._running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.health.stop()
        await self.engine.close()
        self._stopped.set()
        logger.info("GateWatch stopped")

    async def _update_worker(self):
        """Trigger update checks on a fixed cadence.

        The first pass runs immediately, so a fresh install fetches right away.
        """
        logger.info("Update worker started")
        while self._running:
            try:
                result = await self.engine.check_for_update()
                if not result.skipped:
                    if result.success:
                        logger.info(f"Threat database v{result.version} active ({result.count} entries)")
                    else:
                        logger.warning(f"Update failed, will retry: {result.error}")
                await asyncio.sleep(self.check_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Update worker error: {e}")
                await asyncio.sleep(self.check_interval)
        logger.info("Update worker stopped")


async def run_service(config: Config) -> int:
    service = GateWatchService(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(service.stop()))

    try:
        await service.start()
    finally:
        await service.stop()
    return 0


async def run_once(config: Config, message: dict) -> int:
    """Handle a single request and print the JSON response."""
    engine = ThreatEngine(config)
    handler = RequestHandler(engine)
    try:
        await engine.init()
        response = await handler.handle(message)
    finally:
        await engine.close()
    print(json.dumps(response, indent=2, ensure_ascii=False))
    if message.get("action") == "updateDatabase":
        return 0 if response.get("success") else 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gatewatch", description="Payment gateway threat matching")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("run", help="run the update worker and health server")
    check = sub.add_parser("check", help="classify a URL against the local database")
    check.add_argument("url")
    update = sub.add_parser("update", help="fetch the threat feed now")
    update.add_argument("--force", action="store_true", help="ignore the minimum fetch interval")
    sub.add_parser("status", help="show database and update state")
    return parser


def main(argv=None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    config = load_config()
    setup_logging(config.log_level)

    validation_errors = validate_config(config)
    if validation_errors:
        for err in validation_errors:
            logger.error(err)
        return 1

    if args.command == "run":
        return asyncio.run(run_service(config))
    if args.command == "check":
        return asyncio.run(run_once(config, {"action": "checkSecurity", "url": args.url}))
    if args.command == "update":
        return asyncio.run(run_once(config, {"action": "updateDatabase", "force": args.force}))
    return asyncio.run(run_once(config, {"action": "getStatus"}))


if __name__ == "__main__":
    sys.exit(main())
