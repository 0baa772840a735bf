"""Seed the registry from storage and keep it in sync as contracts appear."""

from __future__ import annotations

import asyncio
import logging

from transfer_sentinel.core.types import is_unset_address, normalize_address
from transfer_sentinel.registry.listener_registry import ListenerRegistry
from transfer_sentinel.storage.base_repository import BaseRepository

logger = logging.getLogger(__name__)


async def bootstrap(repository: BaseRepository, registry: ListenerRegistry) -> int:
    """Enroll every contract currently known to storage.

    Storage errors propagate: without the contract list there is nothing
    to watch.
    """
    contracts = await repository.get_contracts()
    logger.info("Loaded %d known contract(s) from storage", len(contracts))
    return await registry.enroll_all(contracts)


class DiscoveryLoop:
    """Periodically re-reads storage, enrolling new contracts and dropping removed ones."""

    def __init__(
        self,
        repository: BaseRepository,
        registry: ListenerRegistry,
        interval_seconds: float,
    ) -> None:
        self._repo = repository
        self._registry = registry
        self._interval = interval_seconds
        self._running = False

    async def sync_once(self) -> tuple[int, int]:
        """Run one sweep. Returns ``(enrolled, removed)``."""
        contracts = await self._repo.get_contracts()
        wanted = {
            normalize_address(c.address)
            for c in contracts
            if not is_unset_address(c.address)
        }

        removed = 0
        for address in self._registry.active_addresses:
            if address not in wanted and await self._registry.unenroll(address):
                logger.info("Contract %s no longer registered: listener removed", address)
                removed += 1

        self._registry.forget_failures(wanted)

        enrolled = await self._registry.enroll_all(contracts)
        if enrolled or removed:
            logger.info("Discovery sweep: +%d / -%d listener(s)", enrolled, removed)
        return enrolled, removed

    async def run(self) -> None:
        self._running = True
        while self._running:
            try:
                await asyncio.sleep(self._interval)
                await self.sync_once()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Error in discovery loop")

    def stop(self) -> None:
        self._running = False
