"""Interactive reconciliation driver emitting incremental progress events.

The pipeline runs in a producer task feeding a queue; the consumer side is an
async iterator handed to the HTTP layer. Items are processed sequentially with
small pauses so a watching user gets a steady signal and the store is not
saturated. A client disconnect stops the producer at the next item boundary.
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

import structlog

from commission_sync import events
from commission_sync.config import Settings, get_settings
from commission_sync.events import ProgressEvent
from commission_sync.store import LedgerStore
from commission_sync.sync.batch import BatchProcessor, BatchProgress, SyncCounters
from commission_sync.sync.delta import select_candidates
from commission_sync.sync.jobs import Clock, utc_now
from commission_sync.sync.reconciler import UpsertReconciler, load_context

logger = structlog.get_logger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


class ProgressStreamer:
    """Runs one reconciliation and yields its progress events.

    Usage:
        streamer = ProgressStreamer(store)
        async for event in streamer.stream(request.is_disconnected):
            yield event.to_sse()
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Settings | None = None,
        clock: Clock = utc_now,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._logger = logger.bind(component="progress_streamer")

    def _processor(self) -> BatchProcessor:
        return BatchProcessor(
            UpsertReconciler(self._store),
            batch_size=self._settings.sync_batch_size,
            concurrent=False,
            item_delay=self._settings.stream_item_delay,
            batch_delay=self._settings.stream_batch_delay,
        )

    async def stream(
        self, is_disconnected: DisconnectCheck | None = None
    ) -> AsyncIterator[ProgressEvent]:
        """Yield events until a terminal phase or a client disconnect."""
        queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        stopped = asyncio.Event()

        def emit(event: ProgressEvent) -> None:
            if not stopped.is_set():
                queue.put_nowait(event)

        emit(events.starting())
        producer = asyncio.create_task(self._drive(emit, stopped, queue))

        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                if is_disconnected is not None and await is_disconnected():
                    self._logger.info("stream_client_disconnected", fase=event.fase.value)
                    break
                yield event
                if event.fase.is_terminal:
                    break
        finally:
            # The producer finishes its current item and exits on its own
            stopped.set()
            if producer.done():
                self._logger.debug("stream_closed")
            else:
                self._logger.info("stream_closed_before_completion")

    async def _drive(
        self,
        emit: Callable[[ProgressEvent], None],
        stopped: asyncio.Event,
        queue: asyncio.Queue[ProgressEvent | None],
    ) -> None:
        counters: SyncCounters | None = None
        last_progress = 0
        try:
            ctx = await load_context(
                self._store,
                now=self._clock(),
                tolerance=self._settings.balance_tolerance,
                default_percent=self._settings.default_commission_percent,
            )
            candidates = select_candidates(ctx.orders, ctx.entries_by_order, ctx.tolerance)
            announced = events.candidates_found(len(candidates), len(ctx.orders))
            last_progress = announced.progresso
            emit(announced)

            if not candidates:
                emit(events.finished(SyncCounters(total=0)))
                return

            async def on_batch(progress: BatchProgress) -> None:
                nonlocal last_progress
                event = events.batch_processed(
                    progress.counters, progress.batch_number, progress.batch_count
                )
                last_progress = event.progresso
                emit(event)

            counters = await self._processor().run(
                candidates, ctx, on_batch=on_batch, should_stop=stopped.is_set
            )
            if stopped.is_set():
                self._logger.info("stream_run_abandoned", processados=counters.processados)
                return
            self._logger.info("stream_run_concluded", **counters.to_dict())
            emit(events.finished(counters))
        except Exception as e:
            self._logger.exception("stream_run_failed", error=str(e))
            emit(events.failed(str(e), counters, last_progress))
        finally:
            queue.put_nowait(None)
