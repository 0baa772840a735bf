"""ERC-20 Transfer event source over JSON-RPC using web3.py.

Each subscription is an independent asyncio task polling ``eth_getLogs``
for its contract. Logs are delivered in provider order; a failed batch is
re-read on the next poll, so delivery is at-least-once.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, TypeVar

from web3 import AsyncWeb3, Web3
from web3.providers import AsyncHTTPProvider

from transfer_sentinel.config import ChainConfig
from transfer_sentinel.core.errors import ChainConnectionError
from transfer_sentinel.core.models import TransferNotification
from transfer_sentinel.core.types import (
    TRANSFER_TOPIC,
    TransferCallback,
    normalize_address,
)
from transfer_sentinel.core.utils import short_address
from transfer_sentinel.listener.base_source import BaseEventSource, SubscriptionHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_bytes(value: Any) -> bytes:
    """Accept HexBytes / bytes / 0x-hex strings from any web3 version."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    raise TypeError(f"Unsupported hex value: {type(value).__name__}")


def _to_hex(value: Any) -> str:
    return "0x" + _to_bytes(value).hex()


def _topic_to_address(topic: Any) -> str:
    # Indexed address params are left-padded to 32 bytes
    return "0x" + _to_bytes(topic)[-20:].hex()


def decode_transfer_log(
    log: Any, block_timestamp: datetime | None = None
) -> TransferNotification | None:
    """Decode a raw ``Transfer(address,address,uint256)`` log.

    Returns None for logs that are not ERC-20 transfers (e.g. ERC-721,
    whose token id sits in a fourth topic).
    """
    topics = log["topics"]
    if len(topics) != 3 or _to_hex(topics[0]).lower() != TRANSFER_TOPIC:
        return None

    data = _to_bytes(log["data"])
    if len(data) < 32:
        return None

    return TransferNotification(
        token_address=normalize_address(log["address"]),
        from_address=_topic_to_address(topics[1]),
        to_address=_topic_to_address(topics[2]),
        amount=str(int.from_bytes(data[:32], "big")),
        tx_hash=_to_hex(log["transactionHash"]).lower(),
        block_number=int(log["blockNumber"]),
        block_timestamp=block_timestamp,
        log_index=int(log.get("logIndex", 0) or 0),
    )


class Web3EventSource(BaseEventSource):
    """Polls ``eth_getLogs`` per watched contract.

    Handles:
    * Address validation and provider reachability at subscribe time
    * Bounded block ranges when catching up
    * Transient RPC failures (logged; the range is retried next poll)
    """

    def __init__(self, config: ChainConfig, w3: AsyncWeb3 | None = None) -> None:
        self._config = config
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(config.rpc_url))
        self._handles: set[SubscriptionHandle] = set()

    @property
    def w3(self) -> AsyncWeb3:
        return self._w3

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._config.request_timeout)

    async def is_connected(self) -> bool:
        try:
            return bool(await self._call(self._w3.is_connected()))
        except Exception:
            return False

    async def subscribe(
        self, address: str, callback: TransferCallback
    ) -> SubscriptionHandle:
        normalized = normalize_address(address)
        if not Web3.is_address(normalized):
            raise ChainConnectionError(f"Malformed contract address: {address!r}")

        try:
            head = await self._call(self._w3.eth.block_number)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise ChainConnectionError(
                f"Provider unreachable while subscribing to {normalized}: {exc}"
            ) from exc

        handle = SubscriptionHandle(address=normalized, start_block=head + 1)
        handle.task = asyncio.create_task(
            self._poll(handle, callback), name=f"transfers:{normalized[:10]}"
        )
        self._handles.add(handle)
        logger.info(
            "Listening for Transfer events on %s from block %d",
            normalized,
            handle.start_block,
        )
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self._handles.discard(handle)
        task = handle.task
        if task is None or task.done():
            return
        task.cancel()
        if task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
        logger.info(
            "Stopped listener for %s (%d delivered)",
            short_address(handle.address),
            handle.delivered,
        )

    async def close(self) -> None:
        for handle in list(self._handles):
            await self.unsubscribe(handle)
        provider = self._w3.provider
        if isinstance(provider, AsyncHTTPProvider):
            await provider.disconnect()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _poll(self, handle: SubscriptionHandle, callback: TransferCallback) -> None:
        checksum = Web3.to_checksum_address(handle.address)
        next_block = handle.start_block

        while True:
            caught_up = True
            try:
                head = await self._call(self._w3.eth.block_number)
                if head >= next_block:
                    to_block = min(head, next_block + self._config.max_block_range - 1)
                    logs = await self._call(
                        self._w3.eth.get_logs(
                            {
                                "fromBlock": next_block,
                                "toBlock": to_block,
                                "address": checksum,
                                "topics": [TRANSFER_TOPIC],
                            }
                        )
                    )
                    await self._deliver_batch(handle, logs, callback)
                    next_block = to_block + 1
                    caught_up = to_block >= head
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "Log poll failed for %s at block %d: %s",
                    short_address(handle.address),
                    next_block,
                    exc,
                )

            if caught_up:
                await asyncio.sleep(self._config.poll_interval_seconds)

    async def _deliver_batch(
        self,
        handle: SubscriptionHandle,
        logs: list[Any],
        callback: TransferCallback,
    ) -> None:
        timestamps: dict[int, datetime] = {}

        for raw in logs:
            block_number = int(raw["blockNumber"])
            if block_number not in timestamps:
                block = await self._call(self._w3.eth.get_block(block_number))
                timestamps[block_number] = datetime.fromtimestamp(
                    int(block["timestamp"]), tz=timezone.utc
                )

            note = decode_transfer_log(raw, timestamps[block_number])
            if note is None:
                continue

            try:
                await callback(note)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Transfer callback failed for %s tx=%s",
                    short_address(handle.address),
                    note.tx_hash,
                )
            handle.delivered += 1
