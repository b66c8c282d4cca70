"""Tests for MutationExecutor: optimistic patch, reconcile, rollback and cancellation."""

import asyncio
import copy
from datetime import timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest

from sla_console.application.services.mutation_executor import MutationExecutor
from sla_console.application.services.origin_registry import OriginRegistry
from sla_console.domain.enums import EntityType, EntryState, FailureKind
from sla_console.domain.exceptions import (
    NetworkFailure,
    PlaceholderConflict,
    ReconciliationFailure,
)
from sla_console.domain.mutations import (
    CreateMutation,
    DeleteMutation,
    OptimisticRecord,
    UpdateMutation,
)
from sla_console.domain.value_objects import MutationScope
from sla_console.infrastructure.cache.keys import dashboard_summary_key, teams_key, tenants_key
from sla_console.infrastructure.cache.reader import QueryReader
from sla_console.infrastructure.cache.staleness import StalenessPolicy
from sla_console.infrastructure.cache.store import CacheStore
from sla_console.shared.utils.generators import TemporaryIdFactory


def _create_tenant(remote_call: Any, temp_id: str = "T-1700000000") -> CreateMutation:
    return CreateMutation(
        entity_type=EntityType.TENANT,
        target_keys=(tenants_key(),),
        remote_call=remote_call,
        placeholder=OptimisticRecord(temp_id=temp_id, fields={"name": "Acme"}),
    )


@pytest.mark.asyncio
async def test_acme_create_reconciles_in_place(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """Placeholder T-1700000000 is visible during the call and becomes id 42 at the same index."""
    store.set(tenants_key(), [{"id": 1, "name": "Globex"}])
    temp_id = TemporaryIdFactory(clock=lambda: 1700000000).next_id()
    assert temp_id == "T-1700000000"
    seen_during_call: list = []

    async def remote_call(correlation_id: str) -> dict:
        seen_during_call.append(copy.deepcopy(store.get(tenants_key()).value))
        return {"id": 42, "name": "Acme"}

    result = await executor.execute(_create_tenant(remote_call, temp_id))

    assert seen_during_call == [
        [{"id": 1, "name": "Globex"}, {"id": "T-1700000000", "name": "Acme"}]
    ]
    entry = store.get(tenants_key())
    assert entry.value == [{"id": 1, "name": "Globex"}, {"id": 42, "name": "Acme"}]
    assert entry.state == EntryState.STALE
    assert result.record == {"id": 42, "name": "Acme"}
    assert tenants_key() in result.invalidated_keys
    assert executor.pending == []


@pytest.mark.asyncio
async def test_failed_team_update_leaves_cache_untouched(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """A failed isActive update on team 7 restores the list exactly and invalidates nothing."""
    original = store.set(teams_key(), [{"id": 7, "isActive": True}, {"id": 8, "isActive": True}])
    summary = store.set(dashboard_summary_key("acme"), {"teams": 2})
    remote_call = AsyncMock(
        side_effect=NetworkFailure("Server error", kind=FailureKind.SERVER, status_code=500)
    )

    with pytest.raises(NetworkFailure) as exc_info:
        await executor.execute(
            UpdateMutation(
                entity_type=EntityType.TEAM,
                target_keys=(teams_key(),),
                remote_call=remote_call,
                record_id=7,
                changes={"isActive": False},
                scope=MutationScope(tenant_id="acme", team_id=7),
            )
        )

    assert exc_info.value.status_code == 500
    assert store.get(teams_key()) == original
    assert store.get(dashboard_summary_key("acme")) == summary
    remote_call.assert_awaited_once()


@pytest.mark.asyncio
async def test_optimistic_update_visible_before_remote_call(
    executor: MutationExecutor, store: CacheStore
) -> None:
    store.set(teams_key(), [{"id": 7, "isActive": True}])
    seen: list = []

    async def remote_call(correlation_id: str) -> dict:
        seen.append(store.get(teams_key()).value[0]["isActive"])
        return {"id": 7, "isActive": False, "updatedAt": "now"}

    await executor.execute(
        UpdateMutation(
            entity_type=EntityType.TEAM,
            target_keys=(teams_key(),),
            remote_call=remote_call,
            record_id=7,
            changes={"isActive": False},
        )
    )
    assert seen == [False]
    assert store.get(teams_key()).value == [{"id": 7, "isActive": False, "updatedAt": "now"}]


@pytest.mark.asyncio
async def test_rollback_restores_absent_key(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """A target key that did not exist before the mutation is absent again after rollback."""
    remote_call = AsyncMock(side_effect=NetworkFailure())
    with pytest.raises(NetworkFailure):
        await executor.execute(_create_tenant(remote_call))
    assert store.get(tenants_key()) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (TimeoutError("slow"), FailureKind.TIMEOUT),
        (ConnectionError("refused"), FailureKind.UNREACHABLE),
    ],
)
async def test_builtin_transport_errors_become_network_failure(
    executor: MutationExecutor, store: CacheStore, error: Exception, kind: FailureKind
) -> None:
    store.set(tenants_key(), [])
    with pytest.raises(NetworkFailure) as exc_info:
        await executor.execute(_create_tenant(AsyncMock(side_effect=error)))
    assert exc_info.value.kind == kind
    assert exc_info.value.__cause__ is error
    assert store.get(tenants_key()).value == []


@pytest.mark.asyncio
async def test_other_errors_roll_back_and_propagate_unchanged(
    executor: MutationExecutor, store: CacheStore
) -> None:
    store.set(tenants_key(), [])
    with pytest.raises(KeyError):
        await executor.execute(_create_tenant(AsyncMock(side_effect=KeyError("boom"))))
    assert store.get(tenants_key()).value == []


@pytest.mark.asyncio
async def test_cancelling_the_awaiting_task_rolls_back(
    executor: MutationExecutor, store: CacheStore, origins: OriginRegistry
) -> None:
    original = store.set(tenants_key(), [{"id": 1}])
    started = asyncio.Event()
    correlation_ids: list[str] = []

    async def remote_call(correlation_id: str) -> dict:
        correlation_ids.append(correlation_id)
        started.set()
        await asyncio.Event().wait()
        return {}

    task = asyncio.create_task(executor.execute(_create_tenant(remote_call)))
    await started.wait()
    assert len(store.get(tenants_key()).value) == 2
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert store.get(tenants_key()) == original
    assert not origins.is_own(correlation_ids[0])
    assert executor.pending == []


@pytest.mark.asyncio
async def test_mutation_cancels_in_flight_fetch(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """A read started before the mutation cannot overwrite its result."""
    store.set(teams_key(), [{"id": 7, "isActive": True}])
    ticket = store.begin_fetch(teams_key())

    await executor.execute(
        UpdateMutation(
            entity_type=EntityType.TEAM,
            target_keys=(teams_key(),),
            remote_call=AsyncMock(return_value=None),
            record_id=7,
            changes={"isActive": False},
        )
    )

    assert store.complete_fetch(ticket, [{"id": 7, "isActive": True}]) is False
    assert store.get(teams_key()).value == [{"id": 7, "isActive": False}]


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(executor: MutationExecutor, store: CacheStore) -> None:
    store.set(tenants_key(), [{"id": "T-1", "name": "Acme"}])
    mutation = _create_tenant(AsyncMock(), temp_id="T-1")

    executor.reconcile(mutation, {"id": 42, "name": "Acme"})
    once = store.get(tenants_key()).value
    executor.reconcile(mutation, {"id": 42, "name": "Acme"})

    assert store.get(tenants_key()).value == once == [{"id": 42, "name": "Acme"}]


@pytest.mark.asyncio
async def test_reconciliation_failure_rolls_back_and_marks_stale(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """A server result without an id cannot replace the placeholder."""
    original = store.set(tenants_key(), [{"id": 1}])

    with pytest.raises(ReconciliationFailure) as exc_info:
        await executor.execute(_create_tenant(AsyncMock(return_value={"name": "Acme"})))

    assert exc_info.value.error_code == "RECONCILIATION_FAILURE"
    entry = store.get(tenants_key())
    assert entry.value == original.value
    assert entry.state == EntryState.STALE


@pytest.mark.asyncio
async def test_custom_reconciler_errors_become_reconciliation_failure(
    executor: MutationExecutor, store: CacheStore
) -> None:
    store.set(tenants_key(), [])

    def reconcile(value: Any, server: Any) -> Any:
        return value + [server["missing"]]

    mutation = _create_tenant(AsyncMock(return_value={"id": 1}))
    mutation.reconcile = reconcile
    with pytest.raises(ReconciliationFailure):
        await executor.execute(mutation)


@pytest.mark.asyncio
async def test_duplicate_pending_placeholder_is_rejected(
    executor: MutationExecutor, store: CacheStore
) -> None:
    release = asyncio.Event()

    async def slow(correlation_id: str) -> dict:
        await release.wait()
        return {"id": 42}

    first = asyncio.create_task(executor.execute(_create_tenant(slow)))
    await asyncio.sleep(0)
    with pytest.raises(PlaceholderConflict):
        await executor.execute(_create_tenant(AsyncMock(return_value={"id": 43})))
    release.set()
    await first
    assert store.get(tenants_key()).value == [{"id": 42}]


@pytest.mark.asyncio
async def test_correlation_id_is_sent_and_remembered(
    executor: MutationExecutor, store: CacheStore, origins: OriginRegistry
) -> None:
    """The remote call gets the correlation id, which stays known after settling."""
    store.set(tenants_key(), [])
    active_during_call: list[bool] = []

    async def remote_call(correlation_id: str) -> dict:
        active_during_call.append(origins.is_own(correlation_id))
        return {"id": 42}

    result = await executor.execute(_create_tenant(remote_call))
    assert active_during_call == [True]
    assert origins.is_own(result.correlation_id)


@pytest.mark.asyncio
async def test_delete_removes_record(executor: MutationExecutor, store: CacheStore) -> None:
    store.set(teams_key(), [{"id": 7}, {"id": 8}])
    await executor.execute(
        DeleteMutation(
            entity_type=EntityType.TEAM,
            target_keys=(teams_key(),),
            remote_call=AsyncMock(return_value=None),
            record_id=7,
        )
    )
    assert store.get(teams_key()).value == [{"id": 8}]


@pytest.mark.asyncio
async def test_overlapping_mutations_snapshot_after_earlier_patch(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """The second mutation's snapshot includes the first one's optimistic patch."""
    store.set(teams_key(), [{"id": 7, "name": "a"}, {"id": 8, "name": "b"}])
    release = asyncio.Event()

    async def slow(correlation_id: str) -> None:
        await release.wait()

    first = asyncio.create_task(
        executor.execute(
            UpdateMutation(
                entity_type=EntityType.TEAM,
                target_keys=(teams_key(),),
                remote_call=slow,
                record_id=7,
                changes={"name": "A"},
            )
        )
    )
    await asyncio.sleep(0)

    with pytest.raises(NetworkFailure):
        await executor.execute(
            UpdateMutation(
                entity_type=EntityType.TEAM,
                target_keys=(teams_key(),),
                remote_call=AsyncMock(side_effect=NetworkFailure()),
                record_id=8,
                changes={"name": "B"},
            )
        )
    assert store.get(teams_key()).value == [{"id": 7, "name": "A"}, {"id": 8, "name": "b"}]

    release.set()
    await first
    assert store.get(teams_key()).value == [{"id": 7, "name": "A"}, {"id": 8, "name": "b"}]


@pytest.mark.asyncio
async def test_custom_optimistic_patch(executor: MutationExecutor, store: CacheStore) -> None:
    """Callers may supply their own patch, e.g. for a count."""
    store.set(("tenant-team-count", "acme"), 3)
    seen: list = []

    async def remote_call(correlation_id: str) -> dict:
        seen.append(store.get(("tenant-team-count", "acme")).value)
        return {"id": 9}

    await executor.execute(
        CreateMutation(
            entity_type=EntityType.TEAM,
            target_keys=(("tenant-team-count", "acme"),),
            remote_call=remote_call,
            placeholder=OptimisticRecord(temp_id="T-5"),
            optimistic_patch=lambda count: (count or 0) + 1,
            reconcile=lambda count, server: count,
        )
    )
    assert seen == [4]
    assert store.get(("tenant-team-count", "acme")).value == 4


@pytest.mark.asyncio
async def test_read_during_pending_create_keeps_placeholder(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """A forced read while the create is pending neither fetches nor drops the placeholder."""
    store.set(tenants_key(), [{"id": 1, "name": "Globex"}])
    reader = QueryReader(store, StalenessPolicy(store, timedelta(hours=6)))
    release = asyncio.Event()
    loads: list[str] = []

    async def remote_call(correlation_id: str) -> dict:
        await release.wait()
        return {"id": 42, "name": "Acme"}

    async def loader() -> list:
        loads.append("tenants")
        return [{"id": 1, "name": "Globex"}]

    task = asyncio.create_task(executor.execute(_create_tenant(remote_call)))
    await asyncio.sleep(0)

    during = await reader.read(tenants_key(), loader, force=True)
    assert during == [{"id": 1, "name": "Globex"}, {"id": "T-1700000000", "name": "Acme"}]
    assert loads == []

    release.set()
    await task
    assert store.get(tenants_key()).value == [
        {"id": 1, "name": "Globex"},
        {"id": 42, "name": "Acme"},
    ]
    assert not store.is_held(tenants_key())


@pytest.mark.asyncio
async def test_overlapping_failures_in_start_order_restore_original(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """A fails, then B fails: neither patch survives."""
    original = store.set(teams_key(), [{"id": 7, "isActive": True}, {"id": 8, "name": "b"}])
    fail_a = asyncio.Event()
    fail_b = asyncio.Event()

    def failing_after(event: asyncio.Event):
        async def remote_call(correlation_id: str) -> None:
            await event.wait()
            raise NetworkFailure()

        return remote_call

    def update(record_id: int, changes: dict, event: asyncio.Event) -> UpdateMutation:
        return UpdateMutation(
            entity_type=EntityType.TEAM,
            target_keys=(teams_key(),),
            remote_call=failing_after(event),
            record_id=record_id,
            changes=changes,
        )

    task_a = asyncio.create_task(executor.execute(update(7, {"isActive": False}, fail_a)))
    await asyncio.sleep(0)
    task_b = asyncio.create_task(executor.execute(update(8, {"name": "B2"}, fail_b)))
    await asyncio.sleep(0)
    assert store.get(teams_key()).value == [
        {"id": 7, "isActive": False},
        {"id": 8, "name": "B2"},
    ]

    fail_a.set()
    with pytest.raises(NetworkFailure):
        await task_a
    assert store.get(teams_key()).value == [{"id": 7, "isActive": True}, {"id": 8, "name": "B2"}]

    fail_b.set()
    with pytest.raises(NetworkFailure):
        await task_b
    assert store.get(teams_key()) == original
    assert not store.is_held(teams_key())


@pytest.mark.asyncio
async def test_rollback_after_earlier_create_settles_keeps_confirmed_record(
    executor: MutationExecutor, store: CacheStore
) -> None:
    """B's rollback restores A's confirmed record, not A's placeholder."""
    store.set(tenants_key(), [{"id": 1, "name": "Globex"}])
    settle_a = asyncio.Event()
    fail_b = asyncio.Event()

    async def create_call(correlation_id: str) -> dict:
        await settle_a.wait()
        return {"id": 42, "name": "Acme"}

    async def rename_call(correlation_id: str) -> None:
        await fail_b.wait()
        raise NetworkFailure()

    task_a = asyncio.create_task(executor.execute(_create_tenant(create_call)))
    await asyncio.sleep(0)
    task_b = asyncio.create_task(
        executor.execute(
            UpdateMutation(
                entity_type=EntityType.TENANT,
                target_keys=(tenants_key(),),
                remote_call=rename_call,
                record_id=1,
                changes={"name": "Globex Corp"},
            )
        )
    )
    await asyncio.sleep(0)

    settle_a.set()
    await task_a
    fail_b.set()
    with pytest.raises(NetworkFailure):
        await task_b

    assert store.get(tenants_key()).value == [
        {"id": 1, "name": "Globex"},
        {"id": 42, "name": "Acme"},
    ]
