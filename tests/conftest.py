"""Shared fakes: in-memory storage, a push-driven event source, and analyzers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from transfer_sentinel.core.errors import ChainConnectionError, DetectionError, StorageError
from transfer_sentinel.core.models import MonitoredContract, TransferEvent, TransferNotification
from transfer_sentinel.core.types import TransferCallback, normalize_address
from transfer_sentinel.detectors.base_analyzer import BaseRiskAnalyzer, RiskResult
from transfer_sentinel.detectors.dispatcher import DetectionDispatcher
from transfer_sentinel.listener.base_source import BaseEventSource, SubscriptionHandle
from transfer_sentinel.registry.listener_registry import ListenerRegistry
from transfer_sentinel.storage.base_repository import BaseRepository
from transfer_sentinel.storage.transfer_recorder import TransferRecorder

TOKEN_A = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
TOKEN_B = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
TOKEN_C = "0xcccccccccccccccccccccccccccccccccccccccc"
OWNER = "0x1111111111111111111111111111111111111111"
ALICE = "0x2222222222222222222222222222222222222222"
BOB = "0x3333333333333333333333333333333333333333"
CREATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------
# Builders
# ---------------------------------------------------------------


def make_contract(
    address: str | None,
    name: str = "Robot",
    bonding: str | None = None,
    owner: str | None = OWNER,
) -> MonitoredContract:
    return MonitoredContract(
        display_name=name,
        contract_address=address,
        bonding_address=bonding,
        owner_wallet=owner,
        creation_timestamp=CREATED_AT,
    )


def make_note(
    token: str = TOKEN_A,
    tx_hash: str = "0xabc",
    amount: str = "1000000000000000000",
    block_number: int = 100,
) -> TransferNotification:
    return TransferNotification(
        token_address=token,
        from_address=ALICE,
        to_address=BOB,
        amount=amount,
        tx_hash=tx_hash,
        block_number=block_number,
        block_timestamp=datetime(2024, 5, 2, tzinfo=timezone.utc),
    )


# ---------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------


class InMemoryRepository(BaseRepository):
    def __init__(self, contracts: list[MonitoredContract] | None = None) -> None:
        self.contracts = list(contracts or [])
        self.transfers: dict[tuple[str, str], TransferEvent] = {}
        self.connected = False
        self.fail_inserts = False
        self.fail_lookups = False
        self.fail_queries = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    async def is_connected(self) -> bool:
        return self.connected

    async def insert_transfer(self, event: TransferEvent) -> bool:
        if self.fail_inserts:
            raise StorageError("disk full")
        key = (event.transaction_hash, event.token_address)
        if key in self.transfers:
            return False
        self.transfers[key] = event
        return True

    async def get_contracts(self) -> list[MonitoredContract]:
        if self.fail_queries:
            raise StorageError("query failed")
        return list(self.contracts)

    async def find_contract_by_address(self, address: str) -> MonitoredContract | None:
        if self.fail_lookups:
            raise StorageError("lookup failed")
        needle = normalize_address(address)
        for contract in self.contracts:
            if needle in (contract.contract_address, contract.bonding_address):
                return contract
        return None

    def records_for(self, token: str) -> list[TransferEvent]:
        return [e for e in self.transfers.values() if e.token_address == token]


class FakeEventSource(BaseEventSource):
    """Subscriptions are plain handles; tests push notifications with ``deliver``."""

    def __init__(self) -> None:
        self.callbacks: dict[str, TransferCallback] = {}
        self.subscribe_calls: list[str] = []
        self.unsubscribed: list[str] = []
        self.failing: set[str] = set()
        self.failing_unsubscribe: set[str] = set()
        self.subscribe_delay = 0.0
        self.connected = True
        self.closed = False

    async def subscribe(self, address: str, callback: TransferCallback) -> SubscriptionHandle:
        self.subscribe_calls.append(address)
        if self.subscribe_delay:
            await asyncio.sleep(self.subscribe_delay)
        if address in self.failing:
            raise ChainConnectionError(f"provider refused {address}")
        self.callbacks[address] = callback
        return SubscriptionHandle(address=address)

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self.callbacks.pop(handle.address, None)
        if handle.address in self.failing_unsubscribe:
            raise RuntimeError("socket already closed")
        self.unsubscribed.append(handle.address)

    async def is_connected(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.closed = True

    @property
    def live(self) -> set[str]:
        return set(self.callbacks)

    async def deliver(self, address: str, note: TransferNotification) -> None:
        await self.callbacks[address](note)


class RecordingAnalyzer(BaseRiskAnalyzer):
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, datetime | None]] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "recording"

    async def analyze(
        self,
        token_address: str,
        owner_wallet: str,
        contract_creation_timestamp: datetime | None,
    ) -> RiskResult:
        self.calls.append((token_address, owner_wallet, contract_creation_timestamp))
        return {"risk": "low"}

    async def close(self) -> None:
        self.closed = True


class FailingAnalyzer(RecordingAnalyzer):
    @property
    def name(self) -> str:
        return "failing"

    async def analyze(
        self,
        token_address: str,
        owner_wallet: str,
        contract_creation_timestamp: datetime | None,
    ) -> RiskResult:
        await super().analyze(token_address, owner_wallet, contract_creation_timestamp)
        raise DetectionError("scoring backend exploded")


class BlockingAnalyzer(RecordingAnalyzer):
    """Never finishes until ``release`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def analyze(
        self,
        token_address: str,
        owner_wallet: str,
        contract_creation_timestamp: datetime | None,
    ) -> RiskResult:
        await super().analyze(token_address, owner_wallet, contract_creation_timestamp)
        await self.release.wait()
        return {}


# ---------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository(
        [
            make_contract(TOKEN_A, name="Alpha"),
            make_contract(TOKEN_B, name="Bravo"),
        ]
    )


@pytest.fixture
def source() -> FakeEventSource:
    return FakeEventSource()


@pytest.fixture
def analyzer() -> RecordingAnalyzer:
    return RecordingAnalyzer()


@pytest.fixture
def dispatcher(repo: InMemoryRepository, analyzer: RecordingAnalyzer) -> DetectionDispatcher:
    return DetectionDispatcher(repo, analyzer, max_concurrency=4, timeout_seconds=1.0)


@pytest.fixture
def registry(
    source: FakeEventSource,
    repo: InMemoryRepository,
    dispatcher: DetectionDispatcher,
) -> ListenerRegistry:
    return ListenerRegistry(
        source=source,
        recorder=TransferRecorder(repo),
        dispatcher=dispatcher,
        subscribe_timeout=1.0,
        max_attempts=3,
    )
