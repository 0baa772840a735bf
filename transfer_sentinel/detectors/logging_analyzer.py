"""Analyzer that only logs: used for dry runs and when no endpoint is set."""

from __future__ import annotations

import logging
from datetime import datetime

from transfer_sentinel.detectors.base_analyzer import BaseRiskAnalyzer, RiskResult

logger = logging.getLogger(__name__)


class LoggingRiskAnalyzer(BaseRiskAnalyzer):
    @property
    def name(self) -> str:
        return "logging"

    async def analyze(
        self,
        token_address: str,
        owner_wallet: str,
        contract_creation_timestamp: datetime | None,
    ) -> RiskResult:
        logger.info(
            "[DRY-RUN] Would analyze token=%s owner=%s created=%s",
            token_address,
            owner_wallet,
            contract_creation_timestamp.isoformat()
            if contract_creation_timestamp
            else "unknown",
        )
        return {"dry_run": True}
