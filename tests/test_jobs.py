"""Tests for job dispatch and the job tracker."""

import asyncio

import pytest

from commission_sync.errors import ConflictError, NotFoundError, StoreError
from commission_sync.models import User
from commission_sync.store import InMemoryStore
from commission_sync.sync.jobs import JobTracker, dispatch_reconciliation, get_job, run_detached

from conftest import ADMIN, SECOND_ADMIN, SELLER


class FlakyStore(InMemoryStore):
    """Store whose SyncJob writes fail on demand.

    ``fail_progress_write`` is the 1-based index of the per-batch progress
    write that raises; ``fail_start`` makes the initial processing write raise.
    """

    def __init__(self, *args, fail_progress_write=None, fail_start=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_progress_write = fail_progress_write
        self.fail_start = fail_start
        self.progress_writes = 0

    async def update(self, entity, record_id, data):
        if entity == "SyncJob":
            if self.fail_start and data.get("status") == "processando":
                raise StoreError("store unavailable")
            if "progresso" in data and "status" not in data:
                self.progress_writes += 1
                if self.progress_writes == self.fail_progress_write:
                    raise RuntimeError(f"write failed in batch {self.progress_writes}")
        return await super().update(entity, record_id, data)


class StallingStore(InMemoryStore):
    """Store whose first entry create blocks until the caller is cancelled."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.create_started = asyncio.Event()

    async def create(self, entity, data):
        if entity == "CommissionEntry":
            self.create_started.set()
            await asyncio.Event().wait()
        return await super().create(entity, data)


def seed(make_order, count=1, solicitado_por="admin@example.com"):
    return {
        "User": [ADMIN, SECOND_ADMIN, SELLER],
        "Pedido": [make_order() for _ in range(count)],
        "SyncJob": [
            {
                "id": "job-1",
                "tipo": "sincronizar_comissoes",
                "status": "pendente",
                "solicitado_por": solicitado_por,
            }
        ],
    }


class TestJobTracker:
    """Tests for the job state machine."""

    @pytest.mark.asyncio
    async def test_successful_run_concludes_job(self, make_order, settings, clock):
        """Test processando → concluido with the final counts."""
        store = InMemoryStore(seed(make_order, count=3))

        result = await JobTracker(store, settings=settings, clock=clock).run("job-1")

        assert result.success is True
        assert result.resultado == {
            "criados": 3,
            "atualizados": 0,
            "ignorados": 0,
            "erros": 0,
            "total": 3,
        }
        job = await store.get("SyncJob", "job-1")
        assert job["status"] == "concluido"
        assert job["iniciado_em"] == "2026-03-15T12:00:00+00:00"
        assert job["concluido_em"] == "2026-03-15T12:00:00+00:00"
        assert job["progresso"] == 100
        assert job["resultado"]["criados"] == 3

    @pytest.mark.asyncio
    async def test_failure_inside_batch_two_of_five_ends_in_error(
        self, make_order, settings, clock
    ):
        """Test that a job never stays in processando after a mid-run failure."""
        store = FlakyStore(seed(make_order, count=5), fail_progress_write=2)
        tracker = JobTracker(
            store, settings=settings.model_copy(update={"sync_batch_size": 1}), clock=clock
        )

        result = await tracker.run("job-1")

        assert result.success is False
        job = await store.get("SyncJob", "job-1")
        assert job["status"] == "erro"
        assert job["erro_mensagem"] == "write failed in batch 2"
        assert job["concluido_em"]
        assert job["progresso"] == 20

    @pytest.mark.asyncio
    async def test_failed_initial_write_fails_fast(self, make_order, settings, clock):
        """Test that nothing else is written when processando cannot be saved."""
        store = FlakyStore(seed(make_order), fail_start=True)

        with pytest.raises(StoreError):
            await JobTracker(store, settings=settings, clock=clock).run("job-1")

        job = await store.get("SyncJob", "job-1")
        assert job["status"] == "pendente"
        assert store.records("CommissionEntry") == []
        assert store.records("Notificacao") == []

    @pytest.mark.asyncio
    async def test_cancelled_run_ends_in_error(self, make_order, settings, clock):
        """Test that cancelling a running job still writes the erro state."""
        store = StallingStore(seed(make_order))
        tracker = JobTracker(store, settings=settings, clock=clock)

        task = asyncio.create_task(tracker.run("job-1"))
        await store.create_started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        job = await store.get("SyncJob", "job-1")
        assert job["status"] == "erro"
        assert job["erro_mensagem"] == "cancelado"
        assert job["concluido_em"] == "2026-03-15T12:00:00+00:00"
        [notification] = store.records("Notificacao")
        assert notification["prioridade"] == "alta"

    @pytest.mark.asyncio
    async def test_unknown_job_is_not_found(self, make_order, settings, clock):
        """Test that running a missing job raises before any work."""
        store = InMemoryStore(seed(make_order))

        with pytest.raises(NotFoundError):
            await JobTracker(store, settings=settings, clock=clock).run("missing")

    @pytest.mark.asyncio
    async def test_run_detached_swallows_launch_failure(self, make_order, settings, clock):
        """Test that the fire-and-forget launcher only logs failures."""
        store = FlakyStore(seed(make_order), fail_start=True)

        await run_detached(JobTracker(store, settings=settings, clock=clock), "job-1")

        assert (await store.get("SyncJob", "job-1"))["status"] == "pendente"


class TestJobNotifications:
    """Tests for completion and failure notifications."""

    @pytest.mark.asyncio
    async def test_clean_run_notifies_requester_with_medium_priority(
        self, make_order, settings, clock
    ):
        """Test the completion notification for a run without errors."""
        store = InMemoryStore(seed(make_order))

        await JobTracker(store, settings=settings, clock=clock).run("job-1")

        [notification] = store.records("Notificacao")
        assert notification["destinatario_email"] == "admin@example.com"
        assert notification["prioridade"] == "media"
        assert notification["tipo"] == "sincronizacao_comissoes"
        assert notification["entidade_id"] == "job-1"
        assert notification["lida"] is False

    @pytest.mark.asyncio
    async def test_item_errors_raise_priority(self, make_order, settings, clock):
        """Test that erros > 0 gives a high-priority completion notification."""
        data = seed(make_order, count=2)
        data["Pedido"][1]["data_pagamento"] = "garbage"
        store = InMemoryStore(data)

        result = await JobTracker(store, settings=settings, clock=clock).run("job-1")

        assert result.success is True
        assert result.resultado["erros"] == 1
        [notification] = store.records("Notificacao")
        assert notification["prioridade"] == "alta"

    @pytest.mark.asyncio
    async def test_failure_notification_is_high_priority(self, make_order, settings, clock):
        """Test the failure notification."""
        store = FlakyStore(seed(make_order, count=3), fail_progress_write=1)

        await JobTracker(store, settings=settings, clock=clock).run("job-1")

        [notification] = store.records("Notificacao")
        assert notification["prioridade"] == "alta"
        assert notification["titulo"] == "Erro na Sincronização de Comissões"
        assert notification["mensagem"] == "write failed in batch 1"

    @pytest.mark.asyncio
    async def test_without_requester_every_admin_is_notified(self, make_order, settings, clock):
        """Test the admin fan-out when no recipient is known."""
        store = InMemoryStore(seed(make_order, solicitado_por=None))

        await JobTracker(store, settings=settings, clock=clock).run("job-1")

        recipients = sorted(n["destinatario_email"] for n in store.records("Notificacao"))
        assert recipients == ["admin@example.com", "gestor@example.com"]

    @pytest.mark.asyncio
    async def test_default_recipient_is_used(self, make_order, settings, clock):
        """Test the configured default recipient."""
        store = InMemoryStore(seed(make_order, solicitado_por=None))
        configured = settings.model_copy(
            update={"notification_default_recipient": "financeiro@example.com"}
        )

        await JobTracker(store, settings=configured, clock=clock).run("job-1")

        [notification] = store.records("Notificacao")
        assert notification["destinatario_email"] == "financeiro@example.com"


class TestDispatch:
    """Tests for job dispatch."""

    @pytest.mark.asyncio
    async def test_creates_queued_job(self):
        """Test that dispatch creates a pendente job for the requester."""
        store = InMemoryStore()

        job = await dispatch_reconciliation(store, User.from_record(ADMIN))

        saved = await get_job(store, job.id)
        assert saved.status.value == "pendente"
        assert saved.solicitado_por == "admin@example.com"

    @pytest.mark.asyncio
    async def test_refuses_while_a_job_is_processing(self):
        """Test the already-running conflict."""
        store = InMemoryStore(
            {"SyncJob": [{"id": "busy", "tipo": "sincronizar_comissoes", "status": "processando"}]}
        )

        with pytest.raises(ConflictError) as exc_info:
            await dispatch_reconciliation(store, User.from_record(ADMIN))

        assert exc_info.value.details == {"status": "already_running", "job_id": "busy"}

    @pytest.mark.asyncio
    async def test_get_job_missing(self):
        """Test get_job on an unknown id."""
        with pytest.raises(NotFoundError):
            await get_job(InMemoryStore(), "nope")
