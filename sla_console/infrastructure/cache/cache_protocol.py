"""Cache protocol consumed by the engine services and UI bindings (DIP)."""

from collections.abc import Callable
from typing import Any, Protocol

from sla_console.domain.enums import EntryState
from sla_console.domain.value_objects import CacheKey


class CacheStoreProtocol(Protocol):
    """Protocol for the in-memory query cache. Implemented by CacheStore."""

    def get(self, key: CacheKey) -> Any:
        """Return the CacheEntry for key or None."""
        ...

    def set(self, key: CacheKey, value: Any, state: EntryState = EntryState.FRESH) -> Any:
        """Replace or create the entry for key; refreshes fetched_at."""
        ...

    def invalidate(self, predicate: Callable[[CacheKey], bool]) -> list[CacheKey]:
        """Mark every matching entry stale; return the affected keys."""
        ...

    def subscribe(self, key: CacheKey, callback: Callable[..., None]) -> Callable[[], None]:
        """Register callback for key and its sub-keys; return an unsubscribe function."""
        ...
