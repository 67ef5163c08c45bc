"""Process-local store used by tests and local runs."""

from __future__ import annotations

import copy
from collections import defaultdict
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from commission_sync.errors import NotFoundError


class InMemoryStore:
    """Dictionary-backed implementation of ``LedgerStore``.

    Records are deep-copied on the way in and out so callers never share
    mutable state with the store. Writes do not touch business fields such as
    an order's ``updated_at``.

    Usage:
        store = InMemoryStore({"Pedido": [{"id": "P1", "status": "pago"}]})
        await store.update("Pedido", "P1", {"comissao_last_sync": "..."})
    """

    def __init__(
        self,
        seed: dict[str, list[dict[str, Any]]] | None = None,
        tokens: dict[str, dict[str, Any]] | None = None,
    ):
        self._data: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._tokens = dict(tokens or {})
        for entity, records in (seed or {}).items():
            for record in records:
                record_id = str(record.get("id") or uuid4())
                self._data[entity][record_id] = {**copy.deepcopy(record), "id": record_id}

    async def list(self, entity: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._data[entity].values()]

    async def filter(self, entity: str, query: dict[str, Any]) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(r)
            for r in self._data[entity].values()
            if all(r.get(key) == value for key, value in query.items())
        ]

    async def get(self, entity: str, record_id: str) -> dict[str, Any] | None:
        record = self._data[entity].get(str(record_id))
        return copy.deepcopy(record) if record is not None else None

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        record_id = str(data.get("id") or uuid4())
        record = {
            **copy.deepcopy(data),
            "id": record_id,
            "created_date": datetime.now(UTC).isoformat(),
        }
        self._data[entity][record_id] = record
        return copy.deepcopy(record)

    async def update(
        self, entity: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        record = self._data[entity].get(str(record_id))
        if record is None:
            raise NotFoundError(f"{entity} {record_id} not found")
        record.update(copy.deepcopy(data))
        return copy.deepcopy(record)

    async def authenticate(self, token: str) -> dict[str, Any] | None:
        user = self._tokens.get(token)
        return copy.deepcopy(user) if user is not None else None

    def add_token(self, token: str, user: dict[str, Any]) -> None:
        self._tokens[token] = dict(user)

    def records(self, entity: str) -> list[dict[str, Any]]:
        """Synchronous snapshot of an entity's records (for inspection)."""
        return [copy.deepcopy(r) for r in self._data[entity].values()]
