"""Supervisor for the set of live Transfer subscriptions."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable

from transfer_sentinel.core.errors import (
    AlreadyActiveError,
    ChainConnectionError,
    StorageError,
)
from transfer_sentinel.core.models import (
    MonitoredContract,
    TransferEvent,
    TransferNotification,
)
from transfer_sentinel.core.types import (
    TransferCallback,
    is_unset_address,
    normalize_address,
)
from transfer_sentinel.core.utils import short_address
from transfer_sentinel.detectors.dispatcher import DetectionDispatcher
from transfer_sentinel.listener.base_source import BaseEventSource, SubscriptionHandle
from transfer_sentinel.metrics import SUBSCRIBE_FAILURES_TOTAL, TRANSFERS_TOTAL
from transfer_sentinel.storage.transfer_recorder import TransferRecorder

logger = logging.getLogger(__name__)


class ListenerRegistry:
    """Owns the ``address -> subscription`` map; at most one entry per address.

    Every mutation happens under a single lock. Each delivered transfer is
    recorded (awaited) and then handed to the dispatcher (not awaited).

    ``max_attempts`` bounds how many consecutive failed subscribe attempts
    ``enroll_all`` makes for one address before it backs off (0 = no cap).
    After ``retry_cooldown`` seconds the count is cleared and a fresh round
    of attempts begins. A successful subscribe resets the count.
    """

    def __init__(
        self,
        source: BaseEventSource,
        recorder: TransferRecorder,
        dispatcher: DetectionDispatcher,
        subscribe_timeout: float = 15.0,
        max_attempts: int = 0,
        retry_cooldown: float = 300.0,
    ) -> None:
        self._source = source
        self._recorder = recorder
        self._dispatcher = dispatcher
        self._subscribe_timeout = subscribe_timeout
        self._max_attempts = max_attempts
        self._retry_cooldown = retry_cooldown

        self._lock = asyncio.Lock()
        self._subscriptions: dict[str, SubscriptionHandle] = {}
        self._enrolling: set[str] = set()
        self._failures: dict[str, int] = {}
        self._gave_up: dict[str, float] = {}

        # Counters for health
        self.notifications_received = 0
        self.transfers_recorded = 0
        self.duplicates_ignored = 0
        self.storage_failures = 0
        self.events_dropped = 0

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._subscriptions)

    def is_active(self, address: str) -> bool:
        return normalize_address(address) in self._subscriptions

    @property
    def active_addresses(self) -> list[str]:
        return sorted(self._subscriptions)

    def failure_count(self, address: str) -> int:
        return self._failures.get(normalize_address(address), 0)

    def forget_failures(self, keep: Iterable[str]) -> int:
        """Drop failure bookkeeping for addresses not in *keep*. Returns how many."""
        wanted = {normalize_address(a) for a in keep}
        stale = [a for a in set(self._failures) | set(self._gave_up) if a not in wanted]
        for address in stale:
            self._failures.pop(address, None)
            self._gave_up.pop(address, None)
        return len(stale)

    def _attempts_exhausted(self, address: str) -> bool:
        failures = self._failures.get(address, 0)
        if not 0 < self._max_attempts <= failures:
            return False

        now = time.monotonic()
        gave_up_at = self._gave_up.get(address)
        if gave_up_at is None:
            self._gave_up[address] = now
            logger.warning(
                "Giving up on %s after %d failed subscribe attempts; retrying in %.0fs",
                address,
                failures,
                self._retry_cooldown,
            )
            return True
        if now - gave_up_at >= self._retry_cooldown:
            self._failures.pop(address, None)
            self._gave_up.pop(address, None)
            logger.info("Cool-down over for %s, retrying subscription", address)
            return False
        return True

    # ------------------------------------------------------------------
    # Enrollment
    # ------------------------------------------------------------------

    async def enroll(self, contract: MonitoredContract) -> bool:
        """Open a subscription for *contract*.

        Returns False (no-op) for the null / zero sentinel address and True
        once the subscription is live. Raises ``AlreadyActiveError`` if the
        address is already watched and ``ChainConnectionError`` if the
        source cannot subscribe.
        """
        address = normalize_address(contract.address)
        if is_unset_address(address):
            logger.debug("Skipping %s: no contract deployed yet", contract.display_name)
            return False

        async with self._lock:
            if address in self._subscriptions:
                raise AlreadyActiveError(address)

            self._enrolling.add(address)
            try:
                handle = await asyncio.wait_for(
                    self._source.subscribe(address, self._make_callback(address)),
                    timeout=self._subscribe_timeout,
                )
            except ChainConnectionError:
                self._failures[address] = self._failures.get(address, 0) + 1
                SUBSCRIBE_FAILURES_TOTAL.inc()
                raise
            except Exception as exc:
                self._failures[address] = self._failures.get(address, 0) + 1
                SUBSCRIBE_FAILURES_TOTAL.inc()
                if isinstance(exc, asyncio.TimeoutError):
                    reason = f"timed out after {self._subscribe_timeout:.0f}s"
                else:
                    reason = str(exc) or type(exc).__name__
                raise ChainConnectionError(
                    f"Cannot subscribe to {address}: {reason}"
                ) from exc
            finally:
                self._enrolling.discard(address)

            self._subscriptions[address] = handle
            self._failures.pop(address, None)
            self._gave_up.pop(address, None)

        logger.info("Listening for transfers on %s (%s)", contract.display_name, address)
        return True

    async def enroll_all(self, contracts: Iterable[MonitoredContract]) -> int:
        """Enroll every deployable contract; return the number newly activated.

        Failures are logged per contract and never stop the loop.
        """
        activated = 0
        for contract in contracts:
            address = normalize_address(contract.address)
            if is_unset_address(address):
                logger.debug(
                    "Skipping %s: no contract deployed yet", contract.display_name
                )
                continue
            if address in self._subscriptions:
                continue
            if self._attempts_exhausted(address):
                logger.debug("Skipping %s: waiting out retry cool-down", address)
                continue

            try:
                if await self.enroll(contract):
                    activated += 1
            except AlreadyActiveError:
                continue
            except ChainConnectionError as exc:
                logger.error(
                    "Failed to set up listener for %s (%s): %s",
                    contract.display_name,
                    address,
                    exc,
                )
            except Exception:
                logger.exception(
                    "Unexpected error enrolling %s (%s)",
                    contract.display_name,
                    address,
                )

        logger.info(
            "Listening for transfers on %d token(s) (%d new)",
            len(self._subscriptions),
            activated,
        )
        return activated

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    async def unenroll(self, address: str) -> bool:
        """Stop watching *address*. Returns whether a subscription existed."""
        normalized = normalize_address(address)
        async with self._lock:
            handle = self._subscriptions.pop(normalized, None)
            if handle is None:
                return False
            await self._release(handle)
        return True

    async def teardown_all(self) -> None:
        """Unsubscribe everything; the map is empty afterwards regardless of failures."""
        async with self._lock:
            handles = list(self._subscriptions.values())
            self._subscriptions.clear()
            for handle in handles:
                await self._release(handle)
        if handles:
            logger.info("Stopped %d transfer listener(s)", len(handles))

    async def _release(self, handle: SubscriptionHandle) -> None:
        try:
            await self._source.unsubscribe(handle)
        except Exception:
            logger.exception("Failed to stop listener for %s", handle.address)

    # ------------------------------------------------------------------
    # Per-event pipeline
    # ------------------------------------------------------------------

    def _make_callback(self, address: str) -> TransferCallback:
        async def _on_transfer(note: TransferNotification) -> None:
            await self.handle_transfer(address, note)

        return _on_transfer

    async def handle_transfer(self, address: str, note: TransferNotification) -> None:
        """Record one notification, then dispatch detection for its token."""
        if address not in self._subscriptions and address not in self._enrolling:
            # Torn down while the notification was in flight
            self.events_dropped += 1
            TRANSFERS_TOTAL.labels(outcome="dropped").inc()
            logger.debug("Dropping transfer tx=%s for inactive %s", note.tx_hash, address)
            return

        self.notifications_received += 1
        TRANSFERS_TOTAL.labels(outcome="received").inc()
        try:
            event = TransferEvent.from_notification(note)
        except ValueError as exc:
            TRANSFERS_TOTAL.labels(outcome="malformed").inc()
            logger.warning("Malformed transfer from %s tx=%s: %s", address, note.tx_hash, exc)
            return

        try:
            if await self._recorder.record(event):
                self.transfers_recorded += 1
                TRANSFERS_TOTAL.labels(outcome="recorded").inc()
            else:
                self.duplicates_ignored += 1
                TRANSFERS_TOTAL.labels(outcome="duplicate").inc()
        except StorageError as exc:
            self.storage_failures += 1
            TRANSFERS_TOTAL.labels(outcome="storage_failure").inc()
            logger.error(
                "Failed to record transfer token=%s tx=%s: %s",
                short_address(event.token_address),
                event.transaction_hash,
                exc,
            )

        self._dispatcher.dispatch(event.token_address)
