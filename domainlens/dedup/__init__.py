"""
Deduplication of refresh work across instances.
"""
from .store import InMemoryStore, RedisStore, SharedStore, get_shared_store
from .gate import PENDING_MARKER, DedupResult, DeduplicationGate, get_dedup_gate

__all__ = [
    "InMemoryStore",
    "RedisStore",
    "SharedStore",
    "get_shared_store",
    "PENDING_MARKER",
    "DedupResult",
    "DeduplicationGate",
    "get_dedup_gate",
]
