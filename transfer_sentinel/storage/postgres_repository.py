"""PostgreSQL storage backend using asyncpg."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import asyncpg

from transfer_sentinel.config import DatabaseConfig
from transfer_sentinel.core.errors import StorageError
from transfer_sentinel.core.models import MonitoredContract, TransferEvent
from transfer_sentinel.core.types import normalize_address
from transfer_sentinel.storage.base_repository import BaseRepository

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS monitored_contracts (
    id                  BIGSERIAL       PRIMARY KEY,
    name                TEXT            NOT NULL,
    contract_address    TEXT,
    bonding_address     TEXT,
    owner_wallet        TEXT,
    created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_contracts_contract
    ON monitored_contracts (LOWER(contract_address));

CREATE INDEX IF NOT EXISTS idx_contracts_bonding
    ON monitored_contracts (LOWER(bonding_address));

CREATE TABLE IF NOT EXISTS transfers (
    id              BIGSERIAL       PRIMARY KEY,
    token_address   TEXT            NOT NULL,
    from_address    TEXT            NOT NULL,
    to_address      TEXT            NOT NULL,
    amount          NUMERIC(78, 0)  NOT NULL,
    tx_hash         TEXT            NOT NULL,
    block_number    BIGINT          NOT NULL,
    observed_at     TIMESTAMPTZ     NOT NULL,
    recorded_at     TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
    UNIQUE (tx_hash, token_address)
);

CREATE INDEX IF NOT EXISTS idx_transfers_token_block
    ON transfers (token_address, block_number);

CREATE INDEX IF NOT EXISTS idx_transfers_to
    ON transfers (token_address, to_address);
"""

_CONTRACT_COLUMNS = (
    "name, contract_address, bonding_address, owner_wallet, created_at"
)


def _row_to_contract(row: Any) -> MonitoredContract:
    return MonitoredContract(
        display_name=row["name"],
        contract_address=row["contract_address"],
        bonding_address=row["bonding_address"],
        owner_wallet=row["owner_wallet"],
        creation_timestamp=row["created_at"],
    )


class PostgresRepository(BaseRepository):
    """asyncpg-backed storage with connection pooling.

    Every driver error surfaces as :class:`StorageError`.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._config.dsn,
                min_size=self._config.pool_min,
                max_size=self._config.pool_max,
            )
            async with self._pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL)
        except (OSError, asyncpg.PostgresError) as exc:
            raise StorageError(
                f"Cannot connect to PostgreSQL at "
                f"{self._config.host}:{self._config.port}/{self._config.database}"
            ) from exc
        logger.info(
            "PostgreSQL pool created (%d-%d) and schema ensured",
            self._config.pool_min,
            self._config.pool_max,
        )

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL pool closed")

    async def is_connected(self) -> bool:
        if not self._pool:
            return False
        try:
            async with self._pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise StorageError("Repository not connected")
        return self._pool

    async def insert_transfer(self, event: TransferEvent) -> bool:
        """Insert transfer; return True if new, False if duplicate."""
        pool = self._require_pool()
        sql = """
            INSERT INTO transfers
                (token_address, from_address, to_address, amount,
                 tx_hash, block_number, observed_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            ON CONFLICT (tx_hash, token_address) DO NOTHING
            RETURNING id
        """
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    sql,
                    event.token_address,
                    event.from_address,
                    event.to_address,
                    Decimal(event.amount),
                    event.transaction_hash,
                    event.block_number,
                    event.observed_at,
                )
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise StorageError(
                f"Failed to insert transfer {event.transaction_hash}"
            ) from exc
        return row is not None

    async def get_contracts(self) -> list[MonitoredContract]:
        pool = self._require_pool()
        sql = f"SELECT {_CONTRACT_COLUMNS} FROM monitored_contracts ORDER BY id"
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(sql)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise StorageError("Failed to load monitored contracts") from exc
        return [_row_to_contract(r) for r in rows]

    async def find_contract_by_address(
        self, address: str
    ) -> MonitoredContract | None:
        pool = self._require_pool()
        sql = f"""
            SELECT {_CONTRACT_COLUMNS}
            FROM monitored_contracts
            WHERE LOWER(contract_address) = $1
               OR LOWER(bonding_address) = $1
            ORDER BY id
            LIMIT 1
        """
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(sql, normalize_address(address))
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise StorageError(f"Failed to look up contract {address}") from exc
        return _row_to_contract(row) if row is not None else None
