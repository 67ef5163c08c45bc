"""On-demand commission generation for a single order."""

from typing import Any

import structlog

from commission_sync.config import Settings, get_settings
from commission_sync.errors import ConflictError, NotFoundError, ValidationError
from commission_sync.models import CommissionEntry, Entity, Order
from commission_sync.store import LedgerStore
from commission_sync.sync.jobs import Clock, utc_now
from commission_sync.sync.reconciler import SyncContext, UpsertOutcome, UpsertReconciler

logger = structlog.get_logger(__name__)

GENERATED_LABEL = "Gerado automaticamente"


async def generate_commission_for_order(
    store: LedgerStore,
    pedido_id: str | None,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> dict[str, Any]:
    """Create or refresh the ledger entry of one order.

    Orders that are not yet eligible answer with a ``skipped*`` status instead
    of an error. A closed existing entry is a conflict.
    """
    settings = settings or get_settings()
    if not pedido_id:
        raise ValidationError("pedido_id é obrigatório")

    record = await store.get(Entity.ORDER, pedido_id)
    if record is None:
        raise NotFoundError("Pedido não encontrado")
    order = Order.from_record(record)

    if not order.is_paid:
        return {"status": "skipped", "message": "Pedido ainda não está pago. Comissão não gerada."}
    if not order.is_settled(settings.balance_tolerance):
        return {
            "status": "skipped_partial",
            "message": "Pedido com saldo em aberto. Comissão não gerada.",
        }
    if order.total_pago <= 0:
        return {"status": "skipped_zero", "message": "Pedido sem valor recebido. Comissão não gerada."}

    entries = [CommissionEntry.from_record(r) for r in await store.list(Entity.COMMISSION_ENTRY)]
    ctx = SyncContext.build(
        entries,
        now=clock(),
        tolerance=settings.balance_tolerance,
        default_percent=settings.default_commission_percent,
    )
    existing = ctx.entries_by_order.get(order.id)
    if existing is not None and existing.is_closed:
        raise ConflictError("Comissão deste pedido já está fechada")

    result = await UpsertReconciler(store).upsert(order, ctx, label=GENERATED_LABEL)
    competency = result.competency
    message = f"Comissão gerada para o mês {competency.competency_month}"
    if competency.rolled:
        message += f" (original {competency.origin_month} estava fechado)"

    status = "created" if result.outcome == UpsertOutcome.CREATED else "updated"
    logger.info(
        "order_commission_generated",
        pedido_id=order.id,
        status=status,
        mes=competency.competency_month,
        rolled=competency.rolled,
    )
    return {"status": status, "message": message, "comissao": result.entry}
