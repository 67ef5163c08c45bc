"""Idempotent create/update of the ledger entry for one order."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog

from commission_sync.models import (
    DEFAULT_PERCENT,
    PAID_STATUS,
    SYSTEM_USER,
    CommissionEntry,
    Entity,
    EntryStatus,
    Movement,
    Order,
    compute_commission,
    money_to_wire,
    timestamp_to_wire,
)
from commission_sync.store import LedgerStore
from commission_sync.sync.competency import Competency, CompetencyResolver, payment_day
from commission_sync.sync.delta import index_entries

logger = structlog.get_logger(__name__)

SYNC_LABEL = "Sincronização automática"
RECALC_NOTE = "Recalculado na sincronização."
ROLL_REASON = "Mês de pagamento fechado na sincronização"


class UpsertOutcome(str, Enum):
    """What happened to one order's ledger entry."""

    CREATED = "created"
    UPDATED = "updated"
    IGNORED = "ignored"
    ERRORED = "errored"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    entry: dict[str, Any] | None = None
    competency: Competency | None = None
    error: str | None = None


@dataclass
class SyncContext:
    """Per-run state threaded through the reconciler.

    Holds the order→entry index and the memoizing competency resolver; neither
    is shared between runs.
    """

    resolver: CompetencyResolver
    entries_by_order: dict[str, CommissionEntry]
    now: datetime
    tolerance: Decimal = Decimal("0.01")
    default_percent: Decimal = DEFAULT_PERCENT
    orders: list[Order] = field(default_factory=list)

    @property
    def stamp(self) -> str:
        return timestamp_to_wire(self.now)

    @classmethod
    def build(
        cls,
        entries: list[CommissionEntry],
        now: datetime,
        tolerance: Decimal = Decimal("0.01"),
        default_percent: Decimal = DEFAULT_PERCENT,
        orders: list[Order] | None = None,
    ) -> "SyncContext":
        return cls(
            resolver=CompetencyResolver(entries, today=now.date()),
            entries_by_order=index_entries(entries),
            now=now,
            tolerance=tolerance,
            default_percent=default_percent,
            orders=list(orders or []),
        )


async def load_context(
    store: LedgerStore,
    now: datetime,
    tolerance: Decimal,
    default_percent: Decimal,
) -> SyncContext:
    """Fetch paid orders and every entry, and build a fresh run context."""
    order_records, entry_records = await asyncio.gather(
        store.filter(Entity.ORDER, {"status": PAID_STATUS}),
        store.list(Entity.COMMISSION_ENTRY),
    )
    entries = [CommissionEntry.from_record(r) for r in entry_records]
    orders = [Order.from_record(r) for r in order_records]
    logger.info("run_context_loaded", paid_orders=len(orders), entries=len(entries))
    return SyncContext.build(entries, now, tolerance, default_percent, orders)


class UpsertReconciler:
    """Creates or updates the single active entry of an order."""

    def __init__(self, store: LedgerStore):
        self._store = store

    async def reconcile(self, order: Order, ctx: SyncContext) -> UpsertResult:
        """Upsert one order; any failure is reported as ERRORED, never raised."""
        try:
            return await self.upsert(order, ctx)
        except Exception as e:
            logger.error(
                "order_sync_failed",
                pedido_id=order.id,
                numero=order.numero_pedido,
                error=str(e),
            )
            return UpsertResult(outcome=UpsertOutcome.ERRORED, error=str(e))

    async def upsert(
        self, order: Order, ctx: SyncContext, label: str = SYNC_LABEL
    ) -> UpsertResult:
        """Upsert one order's entry, raising on failure."""
        base = order.total_pago
        percent = (
            order.porcentagem_comissao
            if order.porcentagem_comissao is not None
            else ctx.default_percent
        )
        value = compute_commission(base, percent)
        paid_on = payment_day(order.data_pagamento, ctx.now.date())
        competency = ctx.resolver.resolve(paid_on)
        existing = ctx.entries_by_order.get(order.id)

        if existing is None:
            entry = await self._create(order, ctx, base, percent, value, paid_on, competency, label)
            return UpsertResult(UpsertOutcome.CREATED, entry=entry, competency=competency)

        if existing.is_closed:
            await self._stamp(order, ctx)
            return UpsertResult(UpsertOutcome.IGNORED, competency=competency)

        patch: dict[str, Any] = {
            "valor_base": money_to_wire(base),
            "percentual": float(percent),
            "valor_comissao": money_to_wire(value),
            "observacao": _append_note(existing.observacao, RECALC_NOTE),
        }
        # A rolled entry keeps its destination month
        if existing.mes_competencia == competency.origin_month:
            patch["data_competencia"] = competency.competency_date
            patch["mes_competencia"] = competency.competency_month

        record = await self._store.update(Entity.COMMISSION_ENTRY, existing.id, patch)
        ctx.entries_by_order[order.id] = CommissionEntry.from_record({**record, "id": existing.id})
        await self._stamp(order, ctx)
        return UpsertResult(UpsertOutcome.UPDATED, entry=record, competency=competency)

    async def _create(
        self,
        order: Order,
        ctx: SyncContext,
        base: Decimal,
        percent: Decimal,
        value: Decimal,
        paid_on: str,
        competency: Competency,
        label: str,
    ) -> dict[str, Any]:
        movements: list[Movement] = []
        note = label
        if competency.rolled:
            note = f"{label}. Mês original ({competency.origin_month}) fechado."
            movements.append(
                Movement(
                    data=ctx.stamp,
                    mes_origem=competency.origin_month,
                    mes_destino=competency.competency_month,
                    usuario=SYSTEM_USER,
                    motivo=ROLL_REASON,
                )
            )

        entry = CommissionEntry(
            id="",
            pedido_id=order.id,
            status=EntryStatus.OPEN,
            valor_base=base,
            percentual=percent,
            valor_comissao=value,
            data_competencia=competency.competency_date,
            mes_competencia=competency.competency_month,
            observacao=note,
            movimentacoes=movements,
            pedido_numero=order.numero_pedido,
            representante_id=order.representante_codigo,
            representante_codigo=order.representante_codigo,
            representante_nome=order.representante_nome,
            cliente_nome=order.cliente_nome,
            data_pagamento_real=paid_on,
        )
        record = await self._store.create(Entity.COMMISSION_ENTRY, entry.to_record())
        ctx.entries_by_order[order.id] = CommissionEntry.from_record(record)

        await self._store.update(
            Entity.ORDER,
            order.id,
            {"comissao_entry_id": record["id"], "comissao_last_sync": ctx.stamp},
        )
        if competency.rolled:
            logger.info(
                "entry_rolled_forward",
                pedido_id=order.id,
                origin=competency.origin_month,
                destination=competency.competency_month,
            )
        return record

    async def _stamp(self, order: Order, ctx: SyncContext) -> None:
        await self._store.update(Entity.ORDER, order.id, {"comissao_last_sync": ctx.stamp})


def _append_note(current: str, note: str) -> str:
    return f"{current} | {note}" if current else note
