"""Subscription registry and contract discovery."""

from transfer_sentinel.registry.discovery import DiscoveryLoop, bootstrap
from transfer_sentinel.registry.listener_registry import ListenerRegistry

__all__ = ["DiscoveryLoop", "ListenerRegistry", "bootstrap"]
