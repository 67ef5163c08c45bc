"""Commission ledger routes."""

from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from commission_sync.api.dependencies import (
    get_app_settings,
    get_clock,
    get_store,
    require_admin,
    require_worker_caller,
)
from commission_sync.api.schemas import AdjustRequest, GenerateRequest, WorkerRequest
from commission_sync.config import Settings
from commission_sync.errors import ValidationError
from commission_sync.models import User
from commission_sync.store import LedgerStore
from commission_sync.sync.jobs import (
    Clock,
    JobTracker,
    dispatch_reconciliation,
    get_job,
    run_detached,
)
from commission_sync.sync.ledger import LedgerMaintenance
from commission_sync.sync.orders import generate_commission_for_order
from commission_sync.sync.reassignment import ReassignmentCascade
from commission_sync.sync.stream import ProgressStreamer

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/commissions", tags=["commissions"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# =============================================================================
# RECONCILIATION
# =============================================================================


@router.post("/sync/jobs", status_code=status.HTTP_202_ACCEPTED)
async def dispatch(
    background_tasks: BackgroundTasks,
    user: User = Depends(require_admin),
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    job = await dispatch_reconciliation(store, user)
    tracker = JobTracker(store, settings=settings, clock=clock)
    background_tasks.add_task(run_detached, tracker, job.id, user.email)
    return {"status": "accepted", "job_id": job.id}


@router.get("/sync/jobs/{job_id}")
async def job_state(
    job_id: str,
    _: User = Depends(require_admin),
    store: LedgerStore = Depends(get_store),
) -> dict[str, Any]:
    job = await get_job(store, job_id)
    return job.to_dict()


@router.post("/sync/worker")
async def run_worker(
    body: WorkerRequest,
    requester: str | None = Depends(require_worker_caller),
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> JSONResponse:
    if not body.job_id:
        raise ValidationError("job_id é obrigatório")
    tracker = JobTracker(store, settings=settings, clock=clock)
    result = await tracker.run(body.job_id, requester)
    code = status.HTTP_200_OK if result.success else status.HTTP_500_INTERNAL_SERVER_ERROR
    return JSONResponse(status_code=code, content=result.to_dict())


@router.post("/sync/stream")
async def stream(
    request: Request,
    _: User = Depends(require_admin),
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> StreamingResponse:
    streamer = ProgressStreamer(store, settings=settings, clock=clock)

    async def event_source() -> AsyncIterator[str]:
        async for event in streamer.stream(request.is_disconnected):
            yield event.to_sse()

    return StreamingResponse(
        event_source(), media_type="text/event-stream", headers=SSE_HEADERS
    )


# =============================================================================
# LEDGER OPERATIONS
# =============================================================================


@router.post("/generate")
async def generate(
    body: GenerateRequest,
    _: User = Depends(require_admin),
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    return await generate_commission_for_order(store, body.pedido_id, settings=settings, clock=clock)


@router.post("/adjust")
async def adjust(
    body: AdjustRequest,
    user: User = Depends(require_admin),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    ledger = LedgerMaintenance(store, clock=clock)

    if body.action == "atualizar_base":
        return await ledger.recalculate_entry(body.entry_id, body.valor_base, body.percentual)

    if body.action == "transferir":
        result = await ReassignmentCascade(store).transfer(
            str(body.novo_representante_codigo) if body.novo_representante_codigo else None,
            pedido_id=body.pedido_id,
            entry_id=body.entry_id,
            move_all=body.mover_todos,
        )
        return result.to_dict()

    if body.action == "postergar":
        entry = await ledger.postpone_entry(body.entry_id, usuario=user.email)
        return {"ok": True, "entry": entry}

    if body.action == "antecipar":
        if not body.mes_destino:
            raise ValidationError("mes_destino é obrigatório")
        entries = await ledger.advance_entries(body.entry_ids, body.mes_destino, usuario=user.email)
        return {"ok": True, "entries": entries}

    raise ValidationError(f"Ação desconhecida: {body.action}")


@router.post("/months/{mes}/close")
async def close_month(
    mes: str,
    _: User = Depends(require_admin),
    store: LedgerStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> dict[str, Any]:
    result = await LedgerMaintenance(store, clock=clock).close_month(mes)
    return result.to_dict()
