"""Ledger store contract and implementations."""

from commission_sync.store.base import LedgerStore
from commission_sync.store.entities_api import EntityAPIClient
from commission_sync.store.memory import InMemoryStore

__all__ = ["LedgerStore", "EntityAPIClient", "InMemoryStore"]
