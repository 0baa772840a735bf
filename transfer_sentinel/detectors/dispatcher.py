"""Fire-and-forget risk analysis for observed transfers."""

from __future__ import annotations

import asyncio
import logging

from transfer_sentinel.core.errors import DetectionError
from transfer_sentinel.core.models import DetectionRequest
from transfer_sentinel.core.types import normalize_address
from transfer_sentinel.detectors.base_analyzer import BaseRiskAnalyzer
from transfer_sentinel.metrics import DETECTIONS_TOTAL
from transfer_sentinel.storage.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class DetectionDispatcher:
    """Schedules one analysis task per transfer, off the delivery path.

    A task resolves the owning contract's metadata, then calls the analyzer.
    Unknown tokens are skipped silently. Every failure is logged as a
    warning and swallowed; nothing is retried.
    """

    def __init__(
        self,
        repository: BaseRepository,
        analyzer: BaseRiskAnalyzer,
        max_concurrency: int = 8,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._repo = repository
        self._analyzer = analyzer
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._timeout = timeout_seconds
        self._tasks: set[asyncio.Task[None]] = set()

        self.dispatched = 0
        self.failed = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def dispatch(self, token_address: str) -> asyncio.Task[None]:
        """Start analysis for *token_address* and return without waiting."""
        token = normalize_address(token_address)
        task = asyncio.create_task(self._run(token), name=f"detect:{token[:10]}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def resolve(self, token_address: str) -> DetectionRequest | None:
        """Build the request for *token_address*, or None if it is unknown."""
        contract = await self._repo.find_contract_by_address(token_address)
        if contract is None or not contract.owner_wallet:
            return None
        return DetectionRequest(
            token_address=token_address,
            owner_wallet=contract.owner_wallet,
            contract_creation_timestamp=contract.creation_timestamp,
        )

    async def _run(self, token_address: str) -> None:
        try:
            async with self._semaphore:
                request = await self.resolve(token_address)
                if request is None:
                    DETECTIONS_TOTAL.labels(outcome="skipped").inc()
                    # Possibly a contract created after the last discovery sweep
                    logger.debug(
                        "No registered contract for %s: detection skipped",
                        token_address,
                    )
                    return

                self.dispatched += 1
                DETECTIONS_TOTAL.labels(outcome="dispatched").inc()
                logger.info(
                    "Running %s wallet detection for %s",
                    self._analyzer.name,
                    token_address,
                )
                try:
                    await asyncio.wait_for(
                        self._analyzer.analyze(
                            request.token_address,
                            request.owner_wallet,
                            request.contract_creation_timestamp,
                        ),
                        timeout=self._timeout,
                    )
                except asyncio.TimeoutError as exc:
                    raise DetectionError(
                        f"analysis timed out after {self._timeout:.0f}s"
                    ) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failed += 1
            DETECTIONS_TOTAL.labels(outcome="failed").inc()
            logger.warning(
                "Wallet detection failed for %s: %s", token_address, exc
            )

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for in-flight detections, cancelling any still running after *timeout*."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        logger.info("Waiting for %d in-flight detection(s)", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(
                "Cancelled %d detection(s) still running at shutdown",
                len(still_running),
            )
