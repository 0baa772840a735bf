"""Chain event sources."""

from transfer_sentinel.listener.base_source import BaseEventSource, SubscriptionHandle
from transfer_sentinel.listener.web3_source import Web3EventSource

__all__ = ["BaseEventSource", "SubscriptionHandle", "Web3EventSource"]
