"""In-memory keyed store of query results with per-entry staleness metadata.

CacheStore is the single shared mutable resource of a console session.
All operations are synchronous, so they are atomic with respect to each
other on the event loop; subscribers are notified before each call
returns, in the order the calls were made. Data operations never raise:
invalid state transitions are logged and skipped, and subscriber errors
are logged and contained.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from sla_console.domain.enums import EntryState
from sla_console.domain.value_objects import CacheKey
from sla_console.infrastructure.cache.keys import is_prefix
from sla_console.shared.utils.datetime import utc_now

logger = logging.getLogger(__name__)

Subscriber = Callable[[CacheKey, "CacheEntry | None"], None]


@dataclass(frozen=True)
class CacheEntry:
    """One cached query result. Only CacheStore creates or replaces entries."""

    key: CacheKey
    value: Any
    fetched_at: datetime
    state: EntryState

    @property
    def is_fresh(self) -> bool:
        return self.state == EntryState.FRESH


@dataclass(eq=False)
class FetchTicket:
    """Handle for one in-flight fetch of a key.

    A cancelled ticket's result is discarded; an invalidated ticket's
    result is stored but lands as stale.
    """

    key: CacheKey
    cancelled: bool = False
    invalidated: bool = False
    started_at: datetime = field(default_factory=utc_now)


class CacheStore:
    """Keyed store of query results (stale-while-revalidate).

    Invalidation keeps the value so the UI can keep rendering it until the
    refetch resolves. Fetch bookkeeping (begin/complete/fail/cancel) lets
    the mutation executor cancel a slow read so it cannot overwrite an
    optimistic write.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        """Initialize an empty store.

        Args:
            clock: Source of fetched_at timestamps (injected in tests).
        """
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._subscribers: dict[CacheKey, list[Subscriber]] = {}
        self._fetches: dict[CacheKey, FetchTicket] = {}
        self._holds: dict[CacheKey, int] = {}

    # ---- Reads ----

    def get(self, key: CacheKey) -> CacheEntry | None:
        """Return the entry for key, or None if absent."""
        return self._entries.get(key)

    def keys(self) -> list[CacheKey]:
        """Return all stored keys (in insertion order)."""
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ---- Writes ----

    def set(
        self,
        key: CacheKey,
        value: Any,
        state: EntryState = EntryState.FRESH,
    ) -> CacheEntry:
        """Replace or create the entry for key. Always updates fetched_at.

        Args:
            key: Cache key.
            value: Query result to store.
            state: State of the new entry (fresh unless told otherwise).

        Returns:
            The stored entry.
        """
        entry = CacheEntry(key=key, value=value, fetched_at=self._clock(), state=state)
        self._entries[key] = entry
        logger.debug("Cache SET: %s (%s)", key, state.value)
        self._notify(key, entry)
        return entry

    def remove(self, key: CacheKey) -> bool:
        """Drop the entry for key. Returns True if one existed."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        logger.debug("Cache REMOVE: %s", key)
        self._notify(key, None)
        return True

    def restore(self, key: CacheKey, entry: CacheEntry | None) -> None:
        """Put back a previously captured entry verbatim (or its absence).

        Used for rollback: unlike set(), fetched_at and state are restored
        exactly as captured.
        """
        if entry is None:
            self.remove(key)
            return
        self._entries[key] = entry
        logger.debug("Cache RESTORE: %s", key)
        self._notify(key, entry)

    def invalidate(self, predicate: Callable[[CacheKey], bool]) -> list[CacheKey]:
        """Mark every entry whose key matches predicate as stale.

        Fresh entries become stale (value kept). A matching in-flight fetch
        is flagged so its result is stored as stale. Entries already stale
        are left alone.

        Args:
            predicate: Called with each key; True means invalidate.

        Returns:
            Keys that were marked stale or flagged.
        """
        affected: list[CacheKey] = []
        for key in list(self._entries):
            entry = self._entries[key]
            if entry.state == EntryState.STALE or not self._matches(predicate, key):
                continue
            if entry.state == EntryState.IN_FLIGHT:
                ticket = self._fetches.get(key)
                if ticket is not None:
                    ticket.invalidated = True
                affected.append(key)
                continue
            self._transition(key, EntryState.STALE)
            affected.append(key)
        for key, ticket in self._fetches.items():
            if key not in self._entries and self._matches(predicate, key):
                ticket.invalidated = True
                affected.append(key)
        if affected:
            logger.info("Cache INVALIDATE: %s key(s)", len(affected))
        return affected

    # ---- Fetch bookkeeping ----

    def in_flight(self, key: CacheKey) -> FetchTicket | None:
        """Return the active fetch ticket for key, if any."""
        return self._fetches.get(key)

    def begin_fetch(self, key: CacheKey) -> FetchTicket:
        """Register a fetch for key and move its entry to in-flight.

        A fresh entry passes through stale first; an existing ticket for
        the same key is cancelled and superseded.

        While the key is held the returned ticket is already cancelled and
        the entry is left untouched.
        """
        if key in self._holds:
            logger.debug("Fetch of held key %s will be discarded", key)
            return FetchTicket(key=key, cancelled=True, started_at=self._clock())
        previous = self._fetches.pop(key, None)
        if previous is not None:
            previous.cancelled = True
        entry = self._entries.get(key)
        if entry is not None:
            if entry.state == EntryState.FRESH:
                self._transition(key, EntryState.STALE)
            if self._entries[key].state == EntryState.STALE:
                self._transition(key, EntryState.IN_FLIGHT)
        ticket = FetchTicket(key=key, started_at=self._clock())
        self._fetches[key] = ticket
        return ticket

    def complete_fetch(self, ticket: FetchTicket, value: Any) -> bool:
        """Store a fetch result unless its ticket was cancelled or superseded.

        Returns:
            True if the value was stored, False if it was discarded.
        """
        if ticket.cancelled or self._fetches.get(ticket.key) is not ticket:
            logger.debug("Discarding result of cancelled fetch: %s", ticket.key)
            return False
        del self._fetches[ticket.key]
        state = EntryState.STALE if ticket.invalidated else EntryState.FRESH
        self.set(ticket.key, value, state)
        return True

    def fail_fetch(self, ticket: FetchTicket) -> bool:
        """Record a failed fetch: the entry goes back to stale, value kept."""
        if ticket.cancelled or self._fetches.get(ticket.key) is not ticket:
            return False
        del self._fetches[ticket.key]
        entry = self._entries.get(ticket.key)
        if entry is not None and entry.state == EntryState.IN_FLIGHT:
            self._transition(ticket.key, EntryState.STALE)
        return True

    def cancel_fetch(self, key: CacheKey) -> bool:
        """Cancel the in-flight fetch for key, if any.

        Cancellation is cooperative: the fetch keeps running but its
        eventual result is discarded. The entry returns to stale.
        """
        ticket = self._fetches.pop(key, None)
        if ticket is None:
            return False
        ticket.cancelled = True
        entry = self._entries.get(key)
        if entry is not None and entry.state == EntryState.IN_FLIGHT:
            self._transition(key, EntryState.STALE)
        logger.debug("Cancelled in-flight fetch: %s", key)
        return True

    # ---- Holds ----

    def hold(self, key: CacheKey) -> None:
        """Keep fetch results away from key until a matching release().

        Holds nest: a key stays held until every hold is released.
        """
        self._holds[key] = self._holds.get(key, 0) + 1

    def release(self, key: CacheKey) -> None:
        count = self._holds.get(key, 0)
        if count <= 1:
            self._holds.pop(key, None)
        else:
            self._holds[key] = count - 1

    def is_held(self, key: CacheKey) -> bool:
        return key in self._holds

    # ---- Subscriptions ----

    def subscribe(self, key: CacheKey, callback: Subscriber) -> Callable[[], None]:
        """Call callback(changed_key, entry) on every change to key or a key below it.

        Returns:
            A function that removes this subscription.
        """
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[key]

        return unsubscribe

    def has_subscribers(self, key: CacheKey) -> bool:
        """Return True if any subscription covers key (i.e. the key is visible)."""
        return any(is_prefix(prefix, key) for prefix in self._subscribers)

    # ---- Internals ----

    def _transition(self, key: CacheKey, target: EntryState) -> None:
        entry = self._entries[key]
        if not entry.state.can_transition_to(target):
            logger.warning(
                "Skipping invalid cache transition for %s: %s -> %s",
                key,
                entry.state.value,
                target.value,
            )
            return
        updated = replace(entry, state=target)
        self._entries[key] = updated
        self._notify(key, updated)

    @staticmethod
    def _matches(predicate: Callable[[CacheKey], bool], key: CacheKey) -> bool:
        try:
            return bool(predicate(key))
        except Exception:
            logger.exception("Invalidation predicate failed for %s", key)
            return False

    def _notify(self, key: CacheKey, entry: CacheEntry | None) -> None:
        callbacks = [
            callback
            for prefix, registered in list(self._subscribers.items())
            if is_prefix(prefix, key)
            for callback in list(registered)
        ]
        for callback in callbacks:
            try:
                callback(key, entry)
            except Exception:
                logger.exception("Cache subscriber failed for %s", key)
