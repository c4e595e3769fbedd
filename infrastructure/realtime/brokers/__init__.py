"""Realtime brokers (in-memory)."""

from .inmemory import InMemoryRealtimeBroker

__all__ = ["InMemoryRealtimeBroker"]
