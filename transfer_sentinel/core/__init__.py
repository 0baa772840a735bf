"""Core models, types, errors, and utilities."""

from transfer_sentinel.core.errors import (
    AlreadyActiveError,
    ChainConnectionError,
    DetectionError,
    SentinelError,
    StorageError,
)
from transfer_sentinel.core.models import (
    DetectionRequest,
    HealthStatus,
    MonitoredContract,
    TransferEvent,
    TransferNotification,
)
from transfer_sentinel.core.types import ZERO_ADDRESS, normalize_address

__all__ = [
    "AlreadyActiveError",
    "ChainConnectionError",
    "DetectionError",
    "SentinelError",
    "StorageError",
    "DetectionRequest",
    "HealthStatus",
    "MonitoredContract",
    "TransferEvent",
    "TransferNotification",
    "ZERO_ADDRESS",
    "normalize_address",
]
