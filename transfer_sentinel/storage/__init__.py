"""Storage layer."""

from transfer_sentinel.storage.base_repository import BaseRepository
from transfer_sentinel.storage.postgres_repository import PostgresRepository
from transfer_sentinel.storage.transfer_recorder import TransferRecorder

__all__ = ["BaseRepository", "PostgresRepository", "TransferRecorder"]
