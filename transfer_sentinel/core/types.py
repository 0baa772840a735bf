"""Shared type aliases, constants, and address helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from transfer_sentinel.core.models import TransferNotification

# Placeholder meaning "no contract deployed yet"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = (
    "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
)

# Async callback the event source awaits once per observed transfer.
TransferCallback = Callable[["TransferNotification"], Awaitable[None]]


def normalize_address(address: str | None) -> str:
    """Return the canonical (stripped, lower-case) form of *address*.

    ``None`` and blank values normalize to ``""``.
    """
    if not address:
        return ""
    return address.strip().lower()


def is_unset_address(address: str | None) -> bool:
    """True for ``None``, blank, or the all-zero sentinel address."""
    normalized = normalize_address(address)
    if not normalized:
        return True
    if normalized == ZERO_ADDRESS:
        return True
    # Short zero forms such as "0x0" show up in hand-edited rows
    digits = normalized[2:] if normalized.startswith("0x") else normalized
    return set(digits) <= {"0"}
