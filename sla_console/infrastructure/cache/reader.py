"""Stale-while-revalidate reads on top of CacheStore."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from sla_console.domain.value_objects import CacheKey
from sla_console.infrastructure.cache.staleness import StalenessPolicy
from sla_console.infrastructure.cache.store import CacheStore, FetchTicket

logger = logging.getLogger(__name__)

Loader = Callable[[], Awaitable[Any]]


class QueryReader:
    """Serves cached values and runs loaders for stale or missing keys.

    Concurrent reads of the same key share one fetch. A fetch cancelled by
    a mutation still completes, but its result is discarded and the
    reader returns whatever the store holds. Keys held by a pending
    mutation are served from the store without running the loader.
    """

    def __init__(self, store: CacheStore, policy: StalenessPolicy) -> None:
        self._store = store
        self._policy = policy
        self._tasks: dict[CacheKey, asyncio.Task[Any]] = {}

    async def read(self, key: CacheKey, loader: Loader, force: bool = False) -> Any:
        """Return the value for key, fetching it with loader when needed.

        Args:
            key: Cache key to read.
            loader: Coroutine function returning the fresh value.
            force: Refetch even if the entry is fresh.

        Returns:
            The cached or freshly loaded value.

        Raises:
            Whatever the loader raises; the entry is left stale.
        """
        if not force and self._policy.is_fresh(key):
            logger.debug("Cache HIT: %s", key)
            return self._store.get(key).value  # type: ignore[union-attr]

        held = self._store.get(key) if self._store.is_held(key) else None
        if held is not None:
            # A pending mutation owns this key; its optimistic value wins.
            logger.debug("Serving held key %s without fetching", key)
            return held.value

        task = self._tasks.get(key)
        if task is None or task.done():
            logger.debug("Cache MISS: %s", key)
            ticket = self._store.begin_fetch(key)
            task = asyncio.create_task(self._fetch(ticket, loader))
            self._tasks[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        # One caller being cancelled must not cancel the shared fetch.
        return await asyncio.shield(task)

    def pending(self, key: CacheKey) -> bool:
        """Return True if a fetch for key is running."""
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def _fetch(self, ticket: FetchTicket, loader: Loader) -> Any:
        try:
            value = await loader()
        except (Exception, asyncio.CancelledError):
            self._store.fail_fetch(ticket)
            raise
        if self._store.complete_fetch(ticket, value):
            return value
        entry = self._store.get(ticket.key)
        return entry.value if entry is not None else value

    def _forget(self, key: CacheKey, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Fetch failed for %s: %s", key, task.exception())
