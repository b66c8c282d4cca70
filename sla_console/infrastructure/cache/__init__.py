"""In-memory query cache: store, keys, staleness policy and reader."""

from sla_console.infrastructure.cache.cache_protocol import CacheStoreProtocol
from sla_console.infrastructure.cache.reader import QueryReader
from sla_console.infrastructure.cache.staleness import StalenessPolicy
from sla_console.infrastructure.cache.store import CacheEntry, CacheStore, FetchTicket

__all__ = [
    "CacheEntry",
    "CacheStore",
    "CacheStoreProtocol",
    "FetchTicket",
    "QueryReader",
    "StalenessPolicy",
]
