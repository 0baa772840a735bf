"""Main application entry point: orchestrates all components.

Usage:
    python -m transfer_sentinel.app
    python -m transfer_sentinel.app --debug
    python -m transfer_sentinel.app --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import time
from typing import Any

from aiohttp import web
from prometheus_client import start_http_server

from transfer_sentinel.config import AppConfig
from transfer_sentinel.core.errors import StorageError
from transfer_sentinel.core.models import HealthStatus
from transfer_sentinel.core.utils import setup_logging
from transfer_sentinel.detectors import (
    BaseRiskAnalyzer,
    DetectionDispatcher,
    HttpRiskAnalyzer,
    LoggingRiskAnalyzer,
)
from transfer_sentinel.listener import BaseEventSource, Web3EventSource
from transfer_sentinel.metrics import ACTIVE_SUBSCRIPTIONS, DETECTIONS_IN_FLIGHT
from transfer_sentinel.registry import DiscoveryLoop, ListenerRegistry, bootstrap
from transfer_sentinel.storage import BaseRepository, PostgresRepository, TransferRecorder

logger = logging.getLogger(__name__)


class SentinelApp:
    """Top-level orchestrator: wires event source -> registry -> recorder -> dispatcher."""

    def __init__(
        self,
        config: AppConfig,
        dry_run: bool = False,
        repository: BaseRepository | None = None,
        source: BaseEventSource | None = None,
        analyzer: BaseRiskAnalyzer | None = None,
    ) -> None:
        self._config = config
        self._dry_run = dry_run
        self._start_time = time.monotonic()

        self._repo = repository or PostgresRepository(config.database)
        self._source = source or Web3EventSource(config.chain)
        self._analyzer = analyzer or self._build_analyzer()

        self._dispatcher = DetectionDispatcher(
            repository=self._repo,
            analyzer=self._analyzer,
            max_concurrency=config.detection.max_concurrency,
            timeout_seconds=config.detection.timeout_seconds,
        )
        self._registry = ListenerRegistry(
            source=self._source,
            recorder=TransferRecorder(self._repo),
            dispatcher=self._dispatcher,
            subscribe_timeout=config.registry.subscribe_timeout_seconds,
            max_attempts=config.registry.subscribe_max_attempts,
            retry_cooldown=config.registry.subscribe_retry_cooldown_seconds,
        )
        self._discovery = DiscoveryLoop(
            repository=self._repo,
            registry=self._registry,
            interval_seconds=config.registry.discovery_interval_seconds,
        )

        # Background tasks
        self._tasks: list[asyncio.Task[Any]] = []
        self._stop_event = asyncio.Event()
        self._shut_down = False

    @property
    def registry(self) -> ListenerRegistry:
        return self._registry

    @property
    def dispatcher(self) -> DetectionDispatcher:
        return self._dispatcher

    def _build_analyzer(self) -> BaseRiskAnalyzer:
        if self._dry_run or not self._config.detection.analyzer_url:
            if not self._dry_run:
                logger.warning("RISK_ANALYZER_URL not set: detections will only be logged")
            return LoggingRiskAnalyzer()
        return HttpRiskAnalyzer(self._config.detection)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Initialize all components and begin processing."""
        logger.info(
            "Starting Transfer Sentinel (dry_run=%s, analyzer=%s)",
            self._dry_run,
            self._analyzer.name,
        )

        # 1. Database
        await self._repo.connect()

        # 2. Chain provider
        if not await self._source.is_connected():
            logger.error(
                "Chain provider unreachable: listeners will be retried by discovery"
            )

        # 3. Seed subscriptions from storage
        activated = await bootstrap(self._repo, self._registry)
        logger.info("Bootstrap enrolled %d contract(s)", activated)

        # 4. Prometheus metrics endpoint
        if self._config.metrics.enabled:
            start_http_server(self._config.metrics.port)
            self._tasks.append(
                asyncio.create_task(self._metrics_loop(), name="metrics")
            )
            logger.info(
                "Prometheus metrics on :%d/metrics",
                self._config.metrics.port,
            )

        # 5. Health check endpoint
        if self._config.health.enabled:
            self._tasks.append(
                asyncio.create_task(self._health_server(), name="health")
            )

        # 6. Discovery of newly created contracts
        if self._config.registry.discovery_interval_seconds > 0:
            self._tasks.append(
                asyncio.create_task(self._discovery.run(), name="discovery")
            )

        logger.info(
            "Transfer Sentinel fully started: watching %d contract(s)",
            len(self._registry),
        )

        await self._stop_event.wait()

    def request_stop(self) -> None:
        self._stop_event.set()

    async def shutdown(self) -> None:
        """Stop listeners, then drain detections and close connections."""
        if self._shut_down:
            return
        self._shut_down = True
        logger.info("Shutting down Transfer Sentinel...")

        self._discovery.stop()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        await self._registry.teardown_all()
        await self._dispatcher.drain(timeout=self._config.detection.timeout_seconds)
        await self._analyzer.close()
        await self._source.close()
        await self._repo.close()
        logger.info("Shutdown complete")

    # ------------------------------------------------------------------
    # Health / metrics
    # ------------------------------------------------------------------

    async def get_health(self) -> HealthStatus:
        reg = self._registry
        return HealthStatus(
            uptime_seconds=time.monotonic() - self._start_time,
            active_subscriptions=len(reg),
            notifications_received=reg.notifications_received,
            transfers_recorded=reg.transfers_recorded,
            duplicates_ignored=reg.duplicates_ignored,
            storage_failures=reg.storage_failures,
            detections_dispatched=self._dispatcher.dispatched,
            detection_failures=self._dispatcher.failed,
            db_connected=await self._repo.is_connected(),
            chain_connected=await self._source.is_connected(),
            watched=reg.active_addresses,
        )

    def _publish_metrics(self) -> None:
        ACTIVE_SUBSCRIPTIONS.set(len(self._registry))
        DETECTIONS_IN_FLIGHT.set(self._dispatcher.in_flight)

    async def _metrics_loop(self) -> None:
        while True:
            try:
                self._publish_metrics()
                await asyncio.sleep(15)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error publishing metrics")
                await asyncio.sleep(60)

    async def _health_server(self) -> None:
        """Minimal HTTP health check endpoint on configured port."""

        async def handle_health(_request: web.Request) -> web.Response:
            status = await self.get_health()
            code = 200 if status.db_connected and status.chain_connected else 503
            return web.json_response(
                {
                    "status": "ok" if code == 200 else "degraded",
                    "uptime_seconds": round(status.uptime_seconds, 1),
                    "active_subscriptions": status.active_subscriptions,
                    "notifications_received": status.notifications_received,
                    "transfers_recorded": status.transfers_recorded,
                    "duplicates_ignored": status.duplicates_ignored,
                    "storage_failures": status.storage_failures,
                    "detections_dispatched": status.detections_dispatched,
                    "detection_failures": status.detection_failures,
                    "db_connected": status.db_connected,
                    "chain_connected": status.chain_connected,
                    "watched": status.watched,
                },
                status=code,
            )

        app = web.Application()
        app.router.add_get("/health", handle_health)
        app.router.add_get("/", handle_health)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, "0.0.0.0", self._config.health.port)
        await site.start()
        logger.info("Health endpoint on :%d/health", self._config.health.port)

        # Keep running until cancelled
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            await runner.cleanup()


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Transfer Sentinel: token transfer recorder and wallet-risk trigger"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log detections instead of calling the risk analyzer",
    )
    return parser.parse_args(argv)


async def _main() -> None:
    args = parse_args()

    config = AppConfig()

    # Override log level if --debug
    log_level = "DEBUG" if args.debug else config.log_level
    setup_logging(level=log_level, json_format=config.log_json)

    config.validate()

    app = SentinelApp(config=config, dry_run=args.dry_run)

    # Graceful shutdown on SIGINT / SIGTERM
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.request_stop)

    try:
        await app.start()
    except StorageError as exc:
        logger.critical("Startup failed: %s", exc)
        raise SystemExit(1) from exc
    finally:
        await app.shutdown()


def main() -> None:
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
