"""Optimistic mutations: patch the cache, call the server, reconcile or roll back.

Algorithm for one mutation:
1. cancel in-flight fetches of every target key (a slow read must not
   overwrite the optimistic value);
2. snapshot every target entry (absent entries are recorded as absent);
3. apply the optimistic patch synchronously, so the change is visible
   before the remote call is issued;
4. await the remote call;
5. on success reconcile the cached value with the server result, then
   run the invalidation cascade;
6. on failure restore every target key exactly and surface the error.

While a mutation is pending its target keys are held in the store, so a
read started meanwhile cannot replace the optimistic value.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from sla_console.application.services.collection_patches import (
    append_record,
    merge_record,
    reconcile_placeholder,
    remove_record,
    replace_record,
)
from sla_console.application.services.invalidation_resolver import InvalidationResolver
from sla_console.application.services.origin_registry import OriginRegistry
from sla_console.domain.enums import EntryState, FailureKind
from sla_console.domain.exceptions import (
    NetworkFailure,
    PlaceholderConflict,
    ReconciliationFailure,
)
from sla_console.domain.mutations import (
    CreateMutation,
    DeleteMutation,
    KeyUpdater,
    Mutation,
    MutationResult,
    PendingMutation,
    Reconciler,
    ServerRecord,
    UpdateMutation,
)
from sla_console.domain.value_objects import CacheKey
from sla_console.infrastructure.cache.store import CacheEntry, CacheStore
from sla_console.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from sla_console.shared.utils.datetime import utc_now
from sla_console.shared.utils.generators import generate_cuid

logger = logging.getLogger(__name__)


def default_patch(mutation: Mutation) -> KeyUpdater:
    """Return the variant's default optimistic patch."""
    match mutation:
        case CreateMutation(placeholder=placeholder):
            record = placeholder.to_record()
            return lambda value: append_record(value, record)
        case UpdateMutation(record_id=record_id, changes=changes, id_field=id_field):
            return lambda value: merge_record(value, record_id, changes, id_field)
        case DeleteMutation(record_id=record_id, id_field=id_field):
            return lambda value: remove_record(value, record_id, id_field)
    raise TypeError(f"Unsupported mutation: {type(mutation).__name__}")


def default_reconciler(mutation: Mutation) -> Reconciler:
    """Return the variant's default reconciler.

    Raises ReconciliationFailure (from the returned callable) when a create's
    server result carries no id or its placeholder cannot be found.
    """
    match mutation:
        case CreateMutation(placeholder=placeholder, entity_type=entity_type):

            def reconcile_create(value: Any, server: ServerRecord) -> Any:
                if not isinstance(server, dict) or server.get(placeholder.id_field) is None:
                    raise ReconciliationFailure(
                        entity_type.value,
                        temp_id=placeholder.temp_id,
                        reason="server result has no id",
                    )
                try:
                    return reconcile_placeholder(
                        value, placeholder.temp_id, server, placeholder.id_field
                    )
                except LookupError as e:
                    raise ReconciliationFailure(
                        entity_type.value,
                        temp_id=placeholder.temp_id,
                        server_id=server.get(placeholder.id_field),
                    ) from e

            return reconcile_create
        case UpdateMutation(record_id=record_id, id_field=id_field):

            def reconcile_update(value: Any, server: ServerRecord) -> Any:
                if not isinstance(server, dict):
                    return value
                return replace_record(value, record_id, server, id_field)

            return reconcile_update
        case DeleteMutation(record_id=record_id, id_field=id_field):
            return lambda value, server: remove_record(value, record_id, id_field)
    raise TypeError(f"Unsupported mutation: {type(mutation).__name__}")


def classify_exception(exc: BaseException) -> NetworkFailure | None:
    """Map builtin transport errors to NetworkFailure; None for anything else."""
    if isinstance(exc, NetworkFailure):
        return exc
    if isinstance(exc, TimeoutError):
        return NetworkFailure(str(exc) or "Remote call timed out", kind=FailureKind.TIMEOUT)
    if isinstance(exc, ConnectionError):
        return NetworkFailure(
            str(exc) or "Remote store unreachable", kind=FailureKind.UNREACHABLE
        )
    return None


class MutationExecutor:
    """Runs mutations against the shared CacheStore.

    Several mutations may be pending at once; each snapshot is taken after
    the optimistic patches of mutations that started earlier. Rolling one
    back keeps the patches of the others, and settling one updates the
    snapshots of the others.
    """

    def __init__(
        self,
        store: CacheStore,
        resolver: InvalidationResolver,
        origins: OriginRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._origins = origins if origins is not None else OriginRegistry()
        self._clock = clock
        self._pending: dict[str, PendingMutation] = {}

    @property
    def origins(self) -> OriginRegistry:
        return self._origins

    @property
    def pending(self) -> list[PendingMutation]:
        """Mutations awaiting their remote call, oldest first."""
        return list(self._pending.values())

    @traced("mutation.execute")
    async def execute(self, mutation: Mutation) -> MutationResult:
        """Apply mutation optimistically and settle it against the server.

        Returns:
            MutationResult with the correlation id, server record and the
            keys the invalidation cascade marked stale.

        Raises:
            PlaceholderConflict: A pending create already uses the placeholder id.
            NetworkFailure: The remote call failed (state rolled back).
            ReconciliationFailure: The server result could not be matched
                (state rolled back, target keys marked stale).
            Exception: Anything else the remote call raised, after rollback.
        """
        self._check_placeholder(mutation)
        target_keys = tuple(dict.fromkeys(mutation.target_keys))
        patch = mutation.optimistic_patch or default_patch(mutation)

        for key in target_keys:
            self._store.cancel_fetch(key)
        snapshot = {key: copy.deepcopy(self._store.get(key)) for key in target_keys}

        pending = PendingMutation(
            id=generate_cuid(),
            mutation=mutation,
            target_keys=target_keys,
            optimistic_patch=patch,
            rollback_snapshot=snapshot,
            correlation_id=generate_cuid(),
            started_at=self._clock(),
        )
        self._pending[pending.id] = pending
        for key in target_keys:
            self._store.hold(key)
        self._origins.register(pending.correlation_id)
        add_span_attributes(
            entity_type=mutation.entity_type.value,
            operation=mutation.operation.value,
            correlation_id=pending.correlation_id,
        )

        try:
            for key in target_keys:
                entry = self._store.get(key)
                value = self._patch_for(pending, key)(entry.value if entry else None)
                self._store.set(key, value, EntryState.FRESH)
            server_result = await mutation.remote_call(pending.correlation_id)
        except asyncio.CancelledError:
            self._rollback(pending, "cancelled")
            raise
        except Exception as e:
            self._rollback(pending, str(e) or type(e).__name__)
            failure = classify_exception(e)
            if failure is None or failure is e:
                raise
            raise failure from e

        try:
            self.reconcile(mutation, server_result)
        except ReconciliationFailure as e:
            self._rollback(pending, e.message)
            logger.error(
                "Reconciliation failed for %s %s: %s",
                mutation.entity_type.value,
                mutation.operation.value,
                e.details,
            )
            # The server committed the write; refetch instead of trusting the rollback.
            self._store.invalidate(lambda key: key in target_keys)
            raise

        self._settle(pending, server_result)
        invalidated = self._resolver.apply(
            mutation.entity_type, mutation.operation, mutation.scope
        )
        logger.info(
            "Mutation settled: %s %s (%s key(s) invalidated)",
            mutation.entity_type.value,
            mutation.operation.value,
            len(invalidated),
        )
        return MutationResult(
            correlation_id=pending.correlation_id,
            record=server_result,
            invalidated_keys=tuple(invalidated),
        )

    def reconcile(self, mutation: Mutation, server_result: ServerRecord) -> None:
        """Fold server_result into every target key. Idempotent.

        Keys with no entry are skipped.

        Raises:
            ReconciliationFailure: If the reconciler cannot match the result.
        """
        updates: dict[CacheKey, Any] = {}
        for key in dict.fromkeys(mutation.target_keys):
            entry = self._store.get(key)
            if entry is None:
                continue
            try:
                updates[key] = self._reconciler_for(mutation, key)(entry.value, server_result)
            except ReconciliationFailure:
                raise
            except Exception as e:
                raise ReconciliationFailure(
                    mutation.entity_type.value, reason=str(e) or type(e).__name__
                ) from e
        for key, value in updates.items():
            self._store.set(key, value, EntryState.FRESH)

    @staticmethod
    def _patch_for(pending: PendingMutation, key: CacheKey) -> KeyUpdater:
        return pending.mutation.key_patches.get(key, pending.optimistic_patch)

    @staticmethod
    def _reconciler_for(mutation: Mutation, key: CacheKey) -> Reconciler:
        override = mutation.key_reconcilers.get(key)
        if override is not None:
            return override
        return mutation.reconcile or default_reconciler(mutation)

    def _check_placeholder(self, mutation: Mutation) -> None:
        if not isinstance(mutation, CreateMutation):
            return
        temp_id = mutation.placeholder.temp_id
        for pending in self._pending.values():
            other = pending.mutation
            if isinstance(other, CreateMutation) and other.placeholder.temp_id == temp_id:
                raise PlaceholderConflict(temp_id)

    def _rollback(self, pending: PendingMutation, reason: str) -> None:
        """Undo pending's patch on every target key.

        Other mutations still pending on a key keep their patches: the key
        is rebuilt from the oldest snapshot with their patches re-applied in
        start order, and their own snapshots are rewritten without pending.
        """
        for key in pending.target_keys:
            self._rebuild(pending, key)
        self._pending.pop(pending.id, None)
        self._release(pending)
        self._origins.discard(pending.correlation_id)
        if pending.overtaken:
            overtaken = set(pending.overtaken)
            self._store.invalidate(lambda key: key in overtaken)
        add_span_event("mutation.rollback", {"reason": reason})
        logger.warning(
            "Rolled back %s %s (%s): %s",
            pending.mutation.entity_type.value,
            pending.mutation.operation.value,
            pending.correlation_id,
            reason,
        )

    def _rebuild(self, failed: PendingMutation, key: CacheKey) -> None:
        chain = [p for p in self._pending.values() if key in p.target_keys]
        entry = chain[0].rollback_snapshot[key] if chain else failed.rollback_snapshot[key]
        survivors = [p for p in chain if p is not failed]
        if not survivors:
            self._store.restore(key, entry)
            return
        for other in survivors:
            other.rollback_snapshot[key] = entry
            value = copy.deepcopy(entry.value) if entry is not None else None
            entry = CacheEntry(
                key=key,
                value=self._patch_for(other, key)(value),
                fetched_at=self._clock(),
                state=EntryState.FRESH,
            )
        self._store.set(key, entry.value, EntryState.FRESH)

    def _settle(self, pending: PendingMutation, server_result: ServerRecord) -> None:
        self._pending.pop(pending.id, None)
        self._carry_forward(pending, server_result)
        self._release(pending)
        self._origins.settle(pending.correlation_id)

    def _carry_forward(self, settled: PendingMutation, server_result: ServerRecord) -> None:
        """Fold a settled write into the snapshots of mutations still pending.

        A later rollback then restores the confirmed record instead of the
        state from before it. Where the result cannot be folded in, the key
        is marked so that rollback refetches it.
        """
        for other in self._pending.values():
            for key in settled.target_keys:
                snapshot = other.rollback_snapshot.get(key)
                if key not in other.target_keys or snapshot is None:
                    continue
                reconciler = self._reconciler_for(settled.mutation, key)
                try:
                    value = reconciler(copy.deepcopy(snapshot.value), server_result)
                except Exception as e:
                    logger.debug(
                        "Cannot carry %s into pending snapshot of %s: %s", key, other.id, e
                    )
                    other.overtaken.add(key)
                    continue
                other.rollback_snapshot[key] = replace(snapshot, value=value)

    def _release(self, pending: PendingMutation) -> None:
        for key in pending.target_keys:
            self._store.release(key)
