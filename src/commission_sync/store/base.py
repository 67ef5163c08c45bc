"""Contract of the external keyed store the engine reads and writes."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class LedgerStore(Protocol):
    """Async keyed collections, one per entity name (see ``models.Entity``).

    Records are JSON-like dictionaries carrying an ``id`` key. ``update`` is a
    shallow merge and raises ``NotFoundError`` for an unknown id; ``get``
    returns None instead.
    """

    async def list(self, entity: str) -> list[dict[str, Any]]: ...

    async def filter(self, entity: str, query: dict[str, Any]) -> list[dict[str, Any]]: ...

    async def get(self, entity: str, record_id: str) -> dict[str, Any] | None: ...

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, entity: str, record_id: str, data: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def authenticate(self, token: str) -> dict[str, Any] | None: ...
