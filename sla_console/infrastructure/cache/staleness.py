"""Per-key stale-time policy.

Each cache key family has its own stale time (how long a fetched value is
trusted). Overrides are keyed by prefix; the longest matching prefix wins.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sla_console.core.constants import (
    KEY_DASHBOARD_SUMMARY,
    KEY_ENTITIES,
    KEY_ENTITY_DETAILS,
    KEY_TENANTS,
)
from sla_console.domain.enums import EntryState
from sla_console.domain.value_objects import CacheKey
from sla_console.infrastructure.cache.keys import is_prefix
from sla_console.shared.utils.datetime import seconds_since, utc_now

if TYPE_CHECKING:
    from sla_console.core.config import Settings
    from sla_console.infrastructure.cache.store import CacheStore


class StalenessPolicy:
    """Decides whether a cached entry may be served without refetching."""

    def __init__(
        self,
        store: CacheStore,
        default_stale_time: timedelta,
        overrides: Mapping[CacheKey, timedelta] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._default = default_stale_time
        # Longest prefixes first so the first match is the most specific.
        self._overrides = sorted(
            (overrides or {}).items(), key=lambda item: len(item[0]), reverse=True
        )
        self._clock = clock

    @classmethod
    def from_settings(cls, store: CacheStore, settings: Settings) -> StalenessPolicy:
        """Build the console's policy from settings."""
        return cls(
            store,
            default_stale_time=timedelta(seconds=settings.cache_stale_seconds),
            overrides={
                (KEY_TENANTS,): timedelta(hours=settings.tenant_refresh_hours),
                (KEY_ENTITIES,): timedelta(hours=settings.entity_refresh_hours),
                (KEY_DASHBOARD_SUMMARY,): timedelta(hours=settings.trend_refresh_hours),
                (KEY_ENTITY_DETAILS,): timedelta(
                    seconds=settings.entity_details_stale_seconds
                ),
            },
        )

    def stale_time_for(self, key: CacheKey) -> timedelta:
        """Return the stale time for key (longest matching override, else default)."""
        for prefix, stale_time in self._overrides:
            if is_prefix(prefix, key):
                return stale_time
        return self._default

    def is_fresh(self, key: CacheKey) -> bool:
        """Return True if key holds a fresh entry younger than its stale time."""
        entry = self._store.get(key)
        if entry is None or entry.state != EntryState.FRESH:
            return False
        age = seconds_since(entry.fetched_at, now=self._clock())
        return age < self.stale_time_for(key).total_seconds()

    def should_refetch(self, key: CacheKey) -> bool:
        """Return True if a read of key should start a fetch.

        False while a fetch for key is already in flight.
        """
        if self._store.in_flight(key) is not None:
            return False
        return not self.is_fresh(key)
