"""Reassignment cascade: move orders (and their dependents) to another representative.

Steps run strictly in order; writes inside a step fan out concurrently and a
step's writes are all issued and awaited before the next step begins. Lookups
that can reject the request happen before the first write. After that every
step is best-effort: failed writes are collected on the result and never roll
back earlier steps. Each step only sets absolute values, so re-running a
transfer after a partial failure converges on the same state.
"""

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import Any

import structlog

from commission_sync.errors import ConflictError, NotFoundError, ValidationError
from commission_sync.models import (
    CommissionEntry,
    Customer,
    Entity,
    Order,
    Representative,
    SettlementSnapshot,
)
from commission_sync.store import LedgerStore

logger = structlog.get_logger(__name__)


@dataclass
class TransferResult:
    """What a transfer touched, and which best-effort writes failed."""

    representante: Representative
    pedidos: list[str] = field(default_factory=list)
    entradas: list[str] = field(default_factory=list)
    fechamentos: list[str] = field(default_factory=list)
    cliente_atualizado: bool = False
    falhas: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.falhas

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "representante": {
                "id": self.representante.id,
                "codigo": self.representante.codigo,
                "nome": self.representante.nome,
            },
            "pedidos_movidos": self.pedidos,
            "entradas_atualizadas": self.entradas,
            "fechamentos_corrigidos": self.fechamentos,
            "cliente_atualizado": self.cliente_atualizado,
            "falhas": self.falhas,
        }


class ReassignmentCascade:
    """Moves an order, optionally with its customer's other open orders.

    Usage:
        cascade = ReassignmentCascade(store)
        result = await cascade.transfer("R2", pedido_id="P1", move_all=True)
    """

    def __init__(self, store: LedgerStore):
        self._store = store

    async def transfer(
        self,
        novo_representante_codigo: str | None,
        pedido_id: str | None = None,
        entry_id: str | None = None,
        move_all: bool = False,
    ) -> TransferResult:
        if not novo_representante_codigo:
            raise ValidationError("novo_representante_codigo é obrigatório")
        if not pedido_id and not entry_id:
            raise ValidationError("Informe pedido_id ou entry_id")

        # Step 1: destination representative
        representative = await self._resolve_representative(str(novo_representante_codigo))

        # Step 2: primary order and the set to move
        primary = await self._resolve_primary(pedido_id, entry_id)
        orders = await self._orders_to_move(primary, move_all)
        order_ids = {o.id for o in orders}

        log = logger.bind(
            representante=representative.codigo,
            pedido_id=primary.id,
            move_all=move_all,
        )
        log.info("transfer_started", pedidos=len(orders))
        result = TransferResult(representante=representative)

        # Step 3: orders leave their previous representative and envelope
        order_patch = {
            "representante_codigo": representative.codigo,
            "representante_nome": representative.nome,
            "comissao_fechamento_id": None,
            "comissao_mes_ano_pago": None,
            "comissao_paga": False,
        }
        moved = await self._fan_out(
            result,
            Entity.ORDER,
            {o.id: self._store.update(Entity.ORDER, o.id, order_patch) for o in orders},
        )
        result.pedidos = moved

        # Step 4: customer follows its orders
        result.cliente_atualizado = await self._update_customer(primary, representative, result)

        # Step 5: open entries of the moved orders
        entries = await self._open_entries(order_ids)
        entry_patch = {
            "representante_id": representative.id,
            "representante_codigo": representative.codigo,
            "representante_nome": representative.nome,
            "fechamento_id": None,
        }
        result.entradas = await self._fan_out(
            result,
            Entity.COMMISSION_ENTRY,
            {
                e.id: self._store.update(Entity.COMMISSION_ENTRY, e.id, entry_patch)
                for e in entries
            },
        )

        # Step 6: editable snapshots no longer count the moved orders
        snapshots = await self._snapshots_to_scrub(order_ids, representative.codigo)
        result.fechamentos = await self._fan_out(
            result,
            Entity.SETTLEMENT,
            {
                s.id: self._store.update(Entity.SETTLEMENT, s.id, s.without_orders(order_ids))
                for s in snapshots
            },
        )

        log.info(
            "transfer_finished",
            pedidos=len(result.pedidos),
            entradas=len(result.entradas),
            fechamentos=len(result.fechamentos),
            falhas=len(result.falhas),
        )
        return result

    # =========================================================================
    # Lookups (may reject; run before any write)
    # =========================================================================

    async def _resolve_representative(self, codigo: str) -> Representative:
        records = await self._store.list(Entity.REPRESENTATIVE)
        for record in records:
            if str(record.get("codigo") or "") == codigo:
                representative = Representative.from_record(record)
                if representative.bloqueado:
                    raise ConflictError(f"Representante {codigo} está bloqueado")
                return representative
        raise NotFoundError(f"Representante {codigo} não encontrado")

    async def _resolve_primary(self, pedido_id: str | None, entry_id: str | None) -> Order:
        if entry_id:
            entry_record = await self._store.get(Entity.COMMISSION_ENTRY, entry_id)
            if entry_record is None:
                raise NotFoundError(f"Comissão {entry_id} não encontrada")
            entry = CommissionEntry.from_record(entry_record)
            if entry.is_closed:
                raise ConflictError("Comissão fechada não pode ser transferida")
            pedido_id = pedido_id or entry.pedido_id

        record = await self._store.get(Entity.ORDER, str(pedido_id))
        if record is None:
            raise NotFoundError(f"Pedido {pedido_id} não encontrado")
        return Order.from_record(record)

    async def _orders_to_move(self, primary: Order, move_all: bool) -> list[Order]:
        if not move_all or not primary.cliente_nome:
            return [primary]
        records = await self._store.filter(Entity.ORDER, {"cliente_nome": primary.cliente_nome})
        orders = [primary]
        for record in records:
            order = Order.from_record(record)
            if order.id != primary.id and not order.comissao_paga:
                orders.append(order)
        return orders

    async def _open_entries(self, order_ids: set[str]) -> list[CommissionEntry]:
        records = await self._store.list(Entity.COMMISSION_ENTRY)
        entries = (CommissionEntry.from_record(r) for r in records)
        return [e for e in entries if e.pedido_id in order_ids and not e.is_closed]

    async def _snapshots_to_scrub(
        self, order_ids: set[str], destination: str
    ) -> list[SettlementSnapshot]:
        # The destination's own envelopes keep the orders it already holds
        records = await self._store.list(Entity.SETTLEMENT)
        snapshots = (SettlementSnapshot.from_record(r) for r in records)
        return [
            s
            for s in snapshots
            if s.is_editable
            and s.representante_codigo != destination
            and s.references_any(order_ids)
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    async def _update_customer(
        self, primary: Order, representative: Representative, result: TransferResult
    ) -> bool:
        if not primary.cliente_nome:
            return False
        try:
            records = await self._store.filter(Entity.CUSTOMER, {"nome": primary.cliente_nome})
            if not records:
                return False
            customer = Customer.from_record(records[0])
            await self._store.update(
                Entity.CUSTOMER,
                customer.id,
                {
                    "representante_codigo": representative.codigo,
                    "representante_nome": representative.nome,
                },
            )
        except Exception as e:
            logger.error("transfer_customer_update_failed", cliente=primary.cliente_nome, error=str(e))
            result.falhas.append({"entidade": Entity.CUSTOMER, "id": primary.cliente_nome, "erro": str(e)})
            return False
        return True

    async def _fan_out(
        self,
        result: TransferResult,
        entity: str,
        writes: dict[str, Awaitable[Any]],
    ) -> list[str]:
        """Await every write; return the ids that succeeded and record failures."""
        ids = list(writes)
        outcomes = await asyncio.gather(*writes.values(), return_exceptions=True)
        succeeded: list[str] = []
        for record_id, outcome in zip(ids, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                logger.error("transfer_write_failed", entity=entity, id=record_id, error=str(outcome))
                result.falhas.append({"entidade": entity, "id": record_id, "erro": str(outcome)})
            else:
                succeeded.append(record_id)
        return succeeded
