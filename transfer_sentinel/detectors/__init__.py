"""Pluggable risk analyzers and the detection dispatcher."""

from transfer_sentinel.detectors.base_analyzer import BaseRiskAnalyzer, RiskResult
from transfer_sentinel.detectors.dispatcher import DetectionDispatcher
from transfer_sentinel.detectors.http_analyzer import HttpRiskAnalyzer
from transfer_sentinel.detectors.logging_analyzer import LoggingRiskAnalyzer

__all__ = [
    "BaseRiskAnalyzer",
    "DetectionDispatcher",
    "HttpRiskAnalyzer",
    "LoggingRiskAnalyzer",
    "RiskResult",
]
