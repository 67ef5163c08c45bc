"""Progress events for the interactive reconciliation stream."""

from commission_sync.events.types import (
    ProgressEvent,
    ProgressPhase,
    batch_processed,
    candidates_found,
    failed,
    finished,
    starting,
)

__all__ = [
    "ProgressEvent",
    "ProgressPhase",
    "starting",
    "candidates_found",
    "batch_processed",
    "finished",
    "failed",
]
