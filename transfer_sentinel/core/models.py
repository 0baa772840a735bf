"""Domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from transfer_sentinel.core.types import normalize_address
from transfer_sentinel.core.utils import utcnow


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True, slots=True)
class MonitoredContract:
    """A token contract under observation: maps 1:1 to a storage row.

    ``address`` is the one that gets watched: the bonding-curve contract
    while it exists, otherwise the trading contract.
    """

    display_name: str
    contract_address: str | None = None
    bonding_address: str | None = None
    owner_wallet: str | None = None
    creation_timestamp: datetime | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "contract_address", normalize_address(self.contract_address) or None
        )
        object.__setattr__(
            self, "bonding_address", normalize_address(self.bonding_address) or None
        )
        object.__setattr__(
            self, "owner_wallet", normalize_address(self.owner_wallet) or None
        )
        object.__setattr__(
            self, "creation_timestamp", _as_utc(self.creation_timestamp)
        )

    @property
    def address(self) -> str:
        return self.bonding_address or self.contract_address or ""


@dataclass(frozen=True, slots=True)
class TransferNotification:
    """A decoded Transfer log as delivered by an event source."""

    token_address: str
    from_address: str
    to_address: str
    amount: str
    tx_hash: str
    block_number: int
    block_timestamp: datetime | None = None
    log_index: int = 0


@dataclass(frozen=True, slots=True)
class TransferEvent:
    """An immutable, persisted transfer fact.

    ``amount`` is the raw token amount as a decimal string so 256-bit values
    survive every hop untouched.
    """

    token_address: str
    from_address: str
    to_address: str
    amount: str
    transaction_hash: str
    block_number: int
    observed_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if isinstance(self.amount, int) and not isinstance(self.amount, bool):
            object.__setattr__(self, "amount", str(self.amount))
        if not (
            isinstance(self.amount, str)
            and self.amount.isascii()
            and self.amount.isdigit()
        ):
            raise ValueError(f"amount must be a non-negative decimal string, got {self.amount!r}")
        for name in ("token_address", "from_address", "to_address"):
            object.__setattr__(self, name, normalize_address(getattr(self, name)))
        object.__setattr__(self, "transaction_hash", self.transaction_hash.strip().lower())
        object.__setattr__(self, "observed_at", _as_utc(self.observed_at))

    @classmethod
    def from_notification(cls, note: TransferNotification) -> TransferEvent:
        """Build an event, stamping detection time when the block has none."""
        return cls(
            token_address=note.token_address,
            from_address=note.from_address,
            to_address=note.to_address,
            amount=note.amount,
            transaction_hash=note.tx_hash,
            block_number=note.block_number,
            observed_at=note.block_timestamp or utcnow(),
        )


@dataclass(frozen=True, slots=True)
class DetectionRequest:
    """Input for one risk-analysis invocation. Never persisted."""

    token_address: str
    owner_wallet: str
    contract_creation_timestamp: datetime | None


@dataclass(slots=True)
class HealthStatus:
    """Application health snapshot."""

    uptime_seconds: float = 0.0
    active_subscriptions: int = 0
    notifications_received: int = 0
    transfers_recorded: int = 0
    duplicates_ignored: int = 0
    storage_failures: int = 0
    detections_dispatched: int = 0
    detection_failures: int = 0
    db_connected: bool = False
    chain_connected: bool = False
    watched: list[str] = field(default_factory=list)
