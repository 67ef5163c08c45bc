"""Fire-and-forget reconciliation: job dispatch and the job-tracking worker.

Job lifecycle: ``pendente`` → ``processando`` → ``concluido`` | ``erro``.
Once ``processando`` has been written, the worker always writes one of the two
terminal states, whatever fails afterwards.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog

from commission_sync.config import Settings, get_settings
from commission_sync.errors import ConflictError, NotFoundError
from commission_sync.models import (
    SYNC_JOB_TYPE,
    Entity,
    JobStatus,
    Priority,
    SyncJob,
    User,
    timestamp_to_wire,
)
from commission_sync.notifications import COMMISSIONS_LINK, SYNC_NOTIFICATION_TYPE, Notifier
from commission_sync.store import LedgerStore
from commission_sync.sync.batch import BatchProcessor, BatchProgress, SyncCounters
from commission_sync.sync.delta import select_candidates
from commission_sync.sync.reconciler import UpsertReconciler, load_context

logger = structlog.get_logger(__name__)

CANCELLED_MESSAGE = "cancelado"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class JobRunResult:
    """Outcome reported to the worker's caller."""

    success: bool
    resultado: dict[str, int] | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "resultado": self.resultado}
        return {"success": False, "error": self.error}


class JobTracker:
    """Runs one reconciliation job and persists its state transitions."""

    def __init__(
        self,
        store: LedgerStore,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._notifier = notifier or Notifier(store)
        self._settings = settings or get_settings()
        self._clock = clock

    def _processor(self) -> BatchProcessor:
        return BatchProcessor(
            UpsertReconciler(self._store),
            batch_size=self._settings.sync_batch_size,
            concurrent=True,
        )

    async def run(self, job_id: str, requester: str | None = None) -> JobRunResult:
        """Execute the job.

        A failure to persist the initial ``processando`` state propagates to
        the caller with nothing else written; any later failure ends the job
        in ``erro``.
        """
        log = logger.bind(job_id=job_id)
        await self._store.update(
            Entity.SYNC_JOB,
            job_id,
            {
                "status": JobStatus.PROCESSING.value,
                "iniciado_em": timestamp_to_wire(self._clock()),
            },
        )
        log.info("sync_job_started")

        try:
            counters = await self._execute(job_id)
            await self._store.update(
                Entity.SYNC_JOB,
                job_id,
                {
                    "status": JobStatus.CONCLUDED.value,
                    "concluido_em": timestamp_to_wire(self._clock()),
                    "resultado": counters.to_result(),
                    "progresso": 100,
                },
            )
        except asyncio.CancelledError:
            log.warning("sync_job_cancelled")
            await self._mark_failed(job_id, CANCELLED_MESSAGE)
            await self._notify_failure(job_id, requester, CANCELLED_MESSAGE)
            raise
        except Exception as e:
            message = str(e) or e.__class__.__name__
            log.exception("sync_job_failed", error=message)
            await self._mark_failed(job_id, message)
            await self._notify_failure(job_id, requester, message)
            return JobRunResult(success=False, error=message)

        log.info("sync_job_concluded", **counters.to_result())
        await self._notify_completion(job_id, requester, counters)
        return JobRunResult(success=True, resultado=counters.to_result())

    async def _execute(self, job_id: str) -> SyncCounters:
        ctx = await load_context(
            self._store,
            now=self._clock(),
            tolerance=self._settings.balance_tolerance,
            default_percent=self._settings.default_commission_percent,
        )
        candidates = select_candidates(ctx.orders, ctx.entries_by_order, ctx.tolerance)

        async def record_progress(progress: BatchProgress) -> None:
            await self._store.update(
                Entity.SYNC_JOB,
                job_id,
                {
                    "progresso": progress.counters.percent,
                    "resultado": progress.counters.to_result(),
                },
            )
            logger.debug(
                "sync_job_progress",
                job_id=job_id,
                batch=progress.batch_number,
                batch_count=progress.batch_count,
                processados=progress.counters.processados,
            )

        return await self._processor().run(candidates, ctx, on_batch=record_progress)

    async def _mark_failed(self, job_id: str, message: str) -> None:
        try:
            await self._store.update(
                Entity.SYNC_JOB,
                job_id,
                {
                    "status": JobStatus.ERROR.value,
                    "concluido_em": timestamp_to_wire(self._clock()),
                    "erro_mensagem": message,
                },
            )
        except Exception as e:
            logger.error("sync_job_error_state_not_saved", job_id=job_id, error=str(e))

    async def _recipient(self, job_id: str, requester: str | None) -> str | None:
        try:
            record = await self._store.get(Entity.SYNC_JOB, job_id)
        except Exception as e:
            logger.warning("sync_job_lookup_failed", job_id=job_id, error=str(e))
            record = None
        if record and record.get("solicitado_por"):
            return str(record["solicitado_por"])
        return requester or self._settings.notification_default_recipient

    async def _notify_completion(
        self, job_id: str, requester: str | None, counters: SyncCounters
    ) -> None:
        mensagem = (
            f"{counters.criados} criadas · {counters.atualizados} atualizadas · "
            f"{counters.ignorados} ignoradas · {counters.erros} erros "
            f"({counters.total} pedidos delta processados)."
        )
        try:
            await self._notifier.send(
                await self._recipient(job_id, requester),
                SYNC_NOTIFICATION_TYPE,
                "Sincronização de Comissões Concluída",
                mensagem,
                Priority.HIGH if counters.erros > 0 else Priority.MEDIUM,
                link=COMMISSIONS_LINK,
                entidade_referencia=Entity.SYNC_JOB,
                entidade_id=job_id,
            )
        except Exception as e:
            logger.error("sync_job_notification_failed", job_id=job_id, error=str(e))

    async def _notify_failure(self, job_id: str, requester: str | None, message: str) -> None:
        try:
            await self._notifier.send(
                await self._recipient(job_id, requester),
                SYNC_NOTIFICATION_TYPE,
                "Erro na Sincronização de Comissões",
                message or "Falha desconhecida no worker.",
                Priority.HIGH,
                link=COMMISSIONS_LINK,
                entidade_referencia=Entity.SYNC_JOB,
                entidade_id=job_id,
            )
        except Exception as e:
            logger.error("sync_job_notification_failed", job_id=job_id, error=str(e))


# =============================================================================
# DISPATCH
# =============================================================================


async def dispatch_reconciliation(store: LedgerStore, requester: User) -> SyncJob:
    """Queue a reconciliation job unless one is already processing."""
    running = await store.filter(
        Entity.SYNC_JOB,
        {"status": JobStatus.PROCESSING.value, "tipo": SYNC_JOB_TYPE},
    )
    if running:
        raise ConflictError(
            "Já existe uma sincronização em andamento.",
            details={"status": "already_running", "job_id": running[0].get("id")},
        )

    record = await store.create(
        Entity.SYNC_JOB,
        {
            "tipo": SYNC_JOB_TYPE,
            "status": JobStatus.QUEUED.value,
            "solicitado_por": requester.email,
        },
    )
    job = SyncJob.from_record(record)
    logger.info("sync_job_queued", job_id=job.id, requester=requester.email)
    return job


async def run_detached(tracker: JobTracker, job_id: str, requester: str | None = None) -> None:
    """Worker entry for fire-and-forget launches; failures are only logged."""
    try:
        await tracker.run(job_id, requester)
    except Exception as e:
        logger.error("sync_worker_launch_failed", job_id=job_id, error=str(e))


async def get_job(store: LedgerStore, job_id: str) -> SyncJob:
    record = await store.get(Entity.SYNC_JOB, job_id)
    if record is None:
        raise NotFoundError(f"SyncJob {job_id} não encontrado")
    return SyncJob.from_record(record)
