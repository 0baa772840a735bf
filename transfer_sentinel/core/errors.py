"""Exception taxonomy shared by every component."""

from __future__ import annotations


class SentinelError(Exception):
    """Base class for all service errors."""


class ChainConnectionError(SentinelError, ConnectionError):
    """A subscription could not be opened (bad address or unreachable provider).

    Retryable by the caller; never retried inside the adapter.
    """


class StorageError(SentinelError):
    """Persisting or reading from the storage backend failed."""


class AlreadyActiveError(SentinelError):
    """An enrollment was attempted for an address that is already watched."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Subscription already active for {address}")
        self.address = address


class DetectionError(SentinelError):
    """Risk analysis failed. Always logged and swallowed by the dispatcher."""
