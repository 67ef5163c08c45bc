"""Commission Sync - commission ledger reconciliation engine."""

__version__ = "0.1.0"

from commission_sync.api import create_app
from commission_sync.config import configure_logging, get_settings
from commission_sync.errors import (
    CommissionError,
    ConflictError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from commission_sync.store import EntityAPIClient, InMemoryStore, LedgerStore
from commission_sync.sync.jobs import JobTracker, dispatch_reconciliation
from commission_sync.sync.reassignment import ReassignmentCascade
from commission_sync.sync.stream import ProgressStreamer

__all__ = [
    # Version
    "__version__",
    # Engine
    "JobTracker",
    "ProgressStreamer",
    "ReassignmentCascade",
    "dispatch_reconciliation",
    # Store
    "LedgerStore",
    "EntityAPIClient",
    "InMemoryStore",
    # Errors
    "CommissionError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
    # API & config
    "create_app",
    "get_settings",
    "configure_logging",
]
