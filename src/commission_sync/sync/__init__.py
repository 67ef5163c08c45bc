"""Reconciliation engine: competency, delta, upsert, batching and the drivers."""
