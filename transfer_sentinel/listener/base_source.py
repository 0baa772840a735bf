"""Abstract event source: one live subscription per token contract."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass

from transfer_sentinel.core.types import TransferCallback


@dataclass(slots=True, eq=False)
class SubscriptionHandle:
    """Runtime-only handle for one contract's delivery loop."""

    address: str
    start_block: int = 0
    task: asyncio.Task[None] | None = None
    delivered: int = 0

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


class BaseEventSource(ABC):
    """Contract for chain connectivity providers.

    Callbacks of different subscriptions may run concurrently; the source
    does not serialize delivery across contracts.
    """

    @abstractmethod
    async def subscribe(
        self, address: str, callback: TransferCallback
    ) -> SubscriptionHandle:
        """Start delivering Transfer notifications for *address*.

        Raises ``ChainConnectionError`` if the address is malformed or the
        provider cannot be reached.
        """
        ...

    @abstractmethod
    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop delivery for *handle* and release its resources."""
        ...

    @abstractmethod
    async def is_connected(self) -> bool:
        """Health probe."""
        ...

    async def close(self) -> None:
        """Release provider-level resources."""
