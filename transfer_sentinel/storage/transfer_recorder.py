"""Idempotent persistence of observed transfers."""

from __future__ import annotations

import logging

from transfer_sentinel.core.errors import StorageError
from transfer_sentinel.core.models import TransferEvent
from transfer_sentinel.core.utils import short_address
from transfer_sentinel.storage.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TransferRecorder:
    """Writes each transfer once; redelivery of the same log is a no-op."""

    def __init__(self, repository: BaseRepository) -> None:
        self._repo = repository

    async def record(self, event: TransferEvent) -> bool:
        """Persist *event*. Return True if new, False if already stored.

        Raises :class:`StorageError` when the backend fails.
        """
        try:
            is_new = await self._repo.insert_transfer(event)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(
                f"Failed to record transfer {event.transaction_hash}"
            ) from exc

        if is_new:
            logger.info(
                "Recorded transfer %s -> %s amount=%s token=%s tx=%s",
                short_address(event.from_address),
                short_address(event.to_address),
                event.amount,
                short_address(event.token_address),
                short_address(event.transaction_hash, 14),
            )
        else:
            logger.debug(
                "Duplicate transfer ignored token=%s tx=%s",
                event.token_address,
                event.transaction_hash,
            )
        return is_new
