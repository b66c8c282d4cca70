"""Mutation variants and pending-mutation bookkeeping.

A mutation is one of CreateMutation, UpdateMutation or DeleteMutation.
Each carries the keys it touches, the remote call that performs the
write and, optionally, its own optimistic_patch / reconcile closures;
when omitted the executor uses the variant's default collection patch.
key_patches and key_reconcilers override both for individual keys.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar

from sla_console.core.constants import DEFAULT_ID_FIELD
from sla_console.domain.enums import EntityType, Operation
from sla_console.domain.value_objects import CacheKey, MutationScope

if TYPE_CHECKING:
    from sla_console.infrastructure.cache.store import CacheEntry

ServerRecord = Any
# Takes the old cached value of one key and returns its new value.
KeyUpdater = Callable[[Any], Any]
# Takes the old cached value of one key and the server result; returns the new value.
Reconciler = Callable[[Any, ServerRecord], Any]
# Performs the write; receives the correlation id to attach to the request.
RemoteCall = Callable[[str], Awaitable[ServerRecord]]


@dataclass(frozen=True)
class OptimisticRecord:
    """Placeholder written into a collection before the server assigns an id."""

    temp_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    id_field: str = DEFAULT_ID_FIELD

    def to_record(self) -> dict[str, Any]:
        """Return the placeholder as a record dict carrying the temporary id."""
        return {**self.fields, self.id_field: self.temp_id}


@dataclass(kw_only=True)
class CreateMutation:
    """Create a record; the placeholder is replaced in place once confirmed."""

    operation: ClassVar[Operation] = Operation.CREATE

    entity_type: EntityType
    target_keys: tuple[CacheKey, ...]
    remote_call: RemoteCall
    placeholder: OptimisticRecord
    scope: MutationScope = field(default_factory=MutationScope)
    optimistic_patch: KeyUpdater | None = None
    reconcile: Reconciler | None = None
    key_patches: dict[CacheKey, KeyUpdater] = field(default_factory=dict)
    key_reconcilers: dict[CacheKey, Reconciler] = field(default_factory=dict)


@dataclass(kw_only=True)
class UpdateMutation:
    """Merge ``changes`` into the record identified by ``record_id``."""

    operation: ClassVar[Operation] = Operation.UPDATE

    entity_type: EntityType
    target_keys: tuple[CacheKey, ...]
    remote_call: RemoteCall
    record_id: Any
    changes: dict[str, Any] = field(default_factory=dict)
    id_field: str = DEFAULT_ID_FIELD
    scope: MutationScope = field(default_factory=MutationScope)
    optimistic_patch: KeyUpdater | None = None
    reconcile: Reconciler | None = None
    key_patches: dict[CacheKey, KeyUpdater] = field(default_factory=dict)
    key_reconcilers: dict[CacheKey, Reconciler] = field(default_factory=dict)


@dataclass(kw_only=True)
class DeleteMutation:
    """Remove the record identified by ``record_id``."""

    operation: ClassVar[Operation] = Operation.DELETE

    entity_type: EntityType
    target_keys: tuple[CacheKey, ...]
    remote_call: RemoteCall
    record_id: Any
    id_field: str = DEFAULT_ID_FIELD
    scope: MutationScope = field(default_factory=MutationScope)
    optimistic_patch: KeyUpdater | None = None
    reconcile: Reconciler | None = None
    key_patches: dict[CacheKey, KeyUpdater] = field(default_factory=dict)
    key_reconcilers: dict[CacheKey, Reconciler] = field(default_factory=dict)


Mutation = CreateMutation | UpdateMutation | DeleteMutation


@dataclass(kw_only=True)
class PendingMutation:
    """A mutation between its optimistic patch and its settlement."""

    id: str
    mutation: Mutation
    target_keys: tuple[CacheKey, ...]
    optimistic_patch: KeyUpdater
    rollback_snapshot: dict[CacheKey, CacheEntry | None]
    correlation_id: str
    started_at: datetime
    # Keys where a later settled write could not be folded into the snapshot
    overtaken: set[CacheKey] = field(default_factory=set)


@dataclass(frozen=True)
class MutationResult:
    """Outcome of a successful mutation."""

    correlation_id: str
    record: ServerRecord
    invalidated_keys: tuple[CacheKey, ...] = ()
