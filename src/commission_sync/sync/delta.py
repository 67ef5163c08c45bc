"""Delta selection: which paid orders need a ledger touch in this run."""

from collections.abc import Iterable, Mapping
from decimal import Decimal

import structlog

from commission_sync.models import ZERO, CommissionEntry, Order

logger = structlog.get_logger(__name__)


def index_entries(entries: Iterable[CommissionEntry]) -> dict[str, CommissionEntry]:
    """Map ``pedido_id`` to the order's active entry.

    An open entry wins over a closed one; otherwise the first entry seen is kept.
    """
    index: dict[str, CommissionEntry] = {}
    for entry in entries:
        current = index.get(entry.pedido_id)
        if current is None or (current.is_closed and not entry.is_closed):
            index[entry.pedido_id] = entry
    return index


def needs_sync(order: Order, entry: CommissionEntry | None, tolerance: Decimal) -> bool:
    """Delta predicate, evaluated in this exact precedence."""
    if not order.is_paid:
        return False
    if entry is not None and entry.is_closed:
        return False
    if not order.is_settled(tolerance):
        return False
    if order.total_pago <= ZERO:
        return False
    if order.comissao_last_sync is None:
        return True
    if order.updated_at is None:
        return False
    # Equal timestamps are not reprocessed
    return order.updated_at > order.comissao_last_sync


def select_candidates(
    orders: Iterable[Order],
    entries_by_order: Mapping[str, CommissionEntry],
    tolerance: Decimal,
) -> list[Order]:
    """Return the orders needing processing, in input order."""
    scanned = 0
    candidates: list[Order] = []
    for order in orders:
        scanned += 1
        if needs_sync(order, entries_by_order.get(order.id), tolerance):
            candidates.append(order)
    logger.info("delta_selected", candidates=len(candidates), scanned=scanned)
    return candidates
