"""Risk analyzer that calls an external scoring service over HTTP."""

from __future__ import annotations

import logging
from datetime import datetime

import aiohttp

from transfer_sentinel.config import DetectionConfig
from transfer_sentinel.core.errors import DetectionError
from transfer_sentinel.detectors.base_analyzer import BaseRiskAnalyzer, RiskResult

logger = logging.getLogger(__name__)


class HttpRiskAnalyzer(BaseRiskAnalyzer):
    """POSTs each request as JSON to ``RISK_ANALYZER_URL``."""

    def __init__(
        self,
        config: DetectionConfig,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._url = config.analyzer_url
        self._token = config.analyzer_token
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        return "http"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def analyze(
        self,
        token_address: str,
        owner_wallet: str,
        contract_creation_timestamp: datetime | None,
    ) -> RiskResult:
        payload = {
            "token_address": token_address,
            "owner_wallet": owner_wallet,
            "contract_created_at": (
                contract_creation_timestamp.isoformat()
                if contract_creation_timestamp
                else None
            ),
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}

        session = await self._get_session()
        try:
            async with session.post(
                self._url, json=payload, headers=headers, timeout=self._timeout
            ) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise DetectionError(
                        f"Risk analyzer returned {resp.status}: {body[:200]}"
                    )
                if resp.content_type == "application/json":
                    return await resp.json()
                return {"status": resp.status}
        except aiohttp.ClientError as exc:
            raise DetectionError(f"Risk analyzer unreachable: {exc}") from exc
