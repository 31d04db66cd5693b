"""Persistence layer: alert store and durable job queue."""

from coinwatch.db.queue import JobQueue
from coinwatch.db.store import AlertStore, canonical_price, normalize_symbol

__all__ = ["AlertStore", "JobQueue", "canonical_price", "normalize_symbol"]
