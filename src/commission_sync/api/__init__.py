"""HTTP surface for the commission ledger engine."""

from commission_sync.api.app import create_app

__all__ = ["create_app"]
