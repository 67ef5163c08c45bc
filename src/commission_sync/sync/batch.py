"""Batch processing shared by the job and stream drivers."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog

from commission_sync.models import Order
from commission_sync.sync.reconciler import (
    SyncContext,
    UpsertOutcome,
    UpsertReconciler,
    UpsertResult,
)

logger = structlog.get_logger(__name__)


@dataclass
class SyncCounters:
    """Running totals of a reconciliation run."""

    total: int = 0
    processados: int = 0
    criados: int = 0
    atualizados: int = 0
    ignorados: int = 0
    erros: int = 0
    falhas: list[dict[str, Any]] = field(default_factory=list)

    def record(self, order: Order, result: UpsertResult) -> None:
        self.processados += 1
        if result.outcome == UpsertOutcome.CREATED:
            self.criados += 1
        elif result.outcome == UpsertOutcome.UPDATED:
            self.atualizados += 1
        elif result.outcome == UpsertOutcome.IGNORED:
            self.ignorados += 1
        else:
            self.erros += 1
            self.falhas.append(
                {"pedido_id": order.id, "numero": order.numero_pedido, "erro": result.error}
            )

    @property
    def percent(self) -> int:
        """Integer share of candidates processed, 0-100."""
        if self.total <= 0:
            return 100
        return min(100, max(0, (self.processados * 100) // self.total))

    def to_result(self) -> dict[str, int]:
        """The job ``resultado`` payload."""
        return {
            "criados": self.criados,
            "atualizados": self.atualizados,
            "ignorados": self.ignorados,
            "erros": self.erros,
            "total": self.total,
        }

    def to_dict(self) -> dict[str, int]:
        return {**self.to_result(), "processados": self.processados}


@dataclass(frozen=True)
class BatchProgress:
    """Snapshot handed to the progress callback after each batch."""

    batch_number: int
    batch_count: int
    counters: SyncCounters


ProgressCallback = Callable[[BatchProgress], Awaitable[None]]
StopCheck = Callable[[], bool]


class BatchProcessor:
    """Drives the reconciler over candidates in fixed-size batches.

    In concurrent mode every item of a batch is reconciled at once and the
    whole batch is awaited before the next starts. In sequential mode items
    run one at a time with ``item_delay`` after each and ``batch_delay``
    between batches.
    """

    def __init__(
        self,
        reconciler: UpsertReconciler,
        batch_size: int = 50,
        concurrent: bool = True,
        item_delay: float = 0.0,
        batch_delay: float = 0.0,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._reconciler = reconciler
        self._batch_size = batch_size
        self._concurrent = concurrent
        self._item_delay = item_delay
        self._batch_delay = batch_delay

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def batch_count(self, total: int) -> int:
        return (total + self._batch_size - 1) // self._batch_size

    async def run(
        self,
        candidates: Sequence[Order],
        ctx: SyncContext,
        on_batch: ProgressCallback | None = None,
        should_stop: StopCheck | None = None,
    ) -> SyncCounters:
        """Process every candidate and return the final counters.

        ``should_stop`` is polled between items; when it returns True the run
        ends early with the counters gathered so far.
        """
        counters = SyncCounters(total=len(candidates))
        batch_count = self.batch_count(len(candidates))

        for index, offset in enumerate(range(0, len(candidates), self._batch_size), start=1):
            batch = candidates[offset : offset + self._batch_size]
            logger.debug(
                "batch_started",
                batch=index,
                batch_count=batch_count,
                first=offset + 1,
                last=offset + len(batch),
            )

            if self._concurrent:
                results = await asyncio.gather(
                    *(self._reconciler.reconcile(order, ctx) for order in batch)
                )
                for order, result in zip(batch, results):
                    counters.record(order, result)
            else:
                for order in batch:
                    if should_stop and should_stop():
                        logger.info("batch_run_stopped", processados=counters.processados)
                        return counters
                    counters.record(order, await self._reconciler.reconcile(order, ctx))
                    if self._item_delay:
                        await asyncio.sleep(self._item_delay)

            if on_batch is not None:
                await on_batch(BatchProgress(index, batch_count, counters))

            if should_stop and should_stop():
                logger.info("batch_run_stopped", processados=counters.processados)
                return counters

            if self._batch_delay and offset + self._batch_size < len(candidates):
                await asyncio.sleep(self._batch_delay)

        return counters
