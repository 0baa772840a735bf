"""Abstract storage interface: allows swapping PostgreSQL for another backend."""

from __future__ import annotations

from abc import ABC, abstractmethod

from transfer_sentinel.core.models import MonitoredContract, TransferEvent


class BaseRepository(ABC):
    """Contract for all storage backends."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection / pool and ensure schema exists."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release all connections."""
        ...

    @abstractmethod
    async def is_connected(self) -> bool:
        """Health probe."""
        ...

    @abstractmethod
    async def insert_transfer(self, event: TransferEvent) -> bool:
        """Persist a transfer, ignoring conflicts on (tx hash, token).

        Return True if a row was written, False if it already existed.
        """
        ...

    @abstractmethod
    async def get_contracts(self) -> list[MonitoredContract]:
        """Return every known token contract."""
        ...

    @abstractmethod
    async def find_contract_by_address(
        self, address: str
    ) -> MonitoredContract | None:
        """Return the contract whose trading *or* bonding address matches."""
        ...
