"""Abstract base class for wallet-risk analyzers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

# Whatever the analyzer reports back; opaque to this service.
RiskResult = dict[str, Any]


class BaseRiskAnalyzer(ABC):
    """Every analyzer must implement ``analyze``.

    To add a new analyzer:
        1. Create ``my_analyzer.py`` in this package.
        2. Subclass ``BaseRiskAnalyzer``.
        3. Implement ``analyze()`` and ``name``.
        4. Select it in ``app.py``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier used in log lines."""
        ...

    @abstractmethod
    async def analyze(
        self,
        token_address: str,
        owner_wallet: str,
        contract_creation_timestamp: datetime | None,
    ) -> RiskResult:
        """Run phishing / wallet-risk analysis for one token.

        Parameters
        ----------
        token_address:
            Lower-case address of the token that just saw a transfer.
        owner_wallet:
            Creator wallet of the token.
        contract_creation_timestamp:
            When the token was registered, if known.

        Returns
        -------
        RiskResult
            Analyzer-specific payload.
        """
        ...

    async def close(self) -> None:
        """Release any resources held by the analyzer."""
