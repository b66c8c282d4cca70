"""Tests for domain enums, value objects, mutations and exceptions."""

import pytest

from sla_console.domain.enums import EntryState, FailureKind
from sla_console.domain.exceptions import (
    ConsoleException,
    MalformedNotification,
    NetworkFailure,
    PlaceholderConflict,
    ReconciliationFailure,
    ScopeMismatch,
    StaleNotification,
)
from sla_console.domain.mutations import OptimisticRecord
from sla_console.domain.value_objects import MutationScope, ViewContext
from sla_console.shared.utils.generators import TemporaryIdFactory, generate_cuid


@pytest.mark.parametrize(
    ("source", "target", "allowed"),
    [
        (EntryState.FRESH, EntryState.STALE, True),
        (EntryState.STALE, EntryState.IN_FLIGHT, True),
        (EntryState.IN_FLIGHT, EntryState.FRESH, True),
        (EntryState.IN_FLIGHT, EntryState.STALE, True),
        (EntryState.FRESH, EntryState.IN_FLIGHT, False),
        (EntryState.STALE, EntryState.FRESH, False),
    ],
)
def test_entry_state_transitions(source: EntryState, target: EntryState, allowed: bool) -> None:
    assert source.can_transition_to(target) is allowed


def test_only_unreachable_and_unavailable_allow_fallback() -> None:
    assert {kind for kind in FailureKind if kind.allows_fallback} == {
        FailureKind.UNREACHABLE,
        FailureKind.UNAVAILABLE,
    }


def test_view_context_matching() -> None:
    """A field constrains the match only when both sides set it."""
    context = ViewContext(tenant_id="acme", team_id=7)
    assert context.matches(MutationScope(tenant_id="acme", team_id=7))
    assert context.matches(MutationScope(tenant_id="acme"))
    assert context.matches(MutationScope())
    assert not context.matches(MutationScope(tenant_id="globex"))
    assert not context.matches(MutationScope(tenant_id="acme", team_id=8))
    assert ViewContext().matches(MutationScope(tenant_id="globex", team_id=1))


def test_mutation_scope_as_dict_drops_unset() -> None:
    assert MutationScope(tenant_id="acme").as_dict() == {"tenant_id": "acme"}


def test_optimistic_record_carries_temp_id() -> None:
    record = OptimisticRecord(temp_id="T-1", fields={"name": "Acme", "id": "ignored"})
    assert record.to_record() == {"name": "Acme", "id": "T-1"}


def test_temporary_ids_strictly_increase() -> None:
    """Two creates within the same second still get distinct placeholder ids."""
    factory = TemporaryIdFactory(clock=lambda: 1700000000.7)
    assert factory.next_id() == "T-1700000000"
    assert factory.next_id() == "T-1700000001"


def test_generate_cuid_is_unique_string() -> None:
    first, second = generate_cuid(), generate_cuid()
    assert isinstance(first, str) and first != second


def test_console_exception_default_error_code() -> None:
    """Base ConsoleException uses class name as error_code when not provided."""
    exc = ConsoleException("Something failed")
    assert exc.message == "Something failed"
    assert exc.error_code == "ConsoleException"
    assert exc.details == {}


def test_network_failure() -> None:
    exc = NetworkFailure("Server error", kind=FailureKind.SERVER, status_code=500)
    assert exc.error_code == "NETWORK_FAILURE"
    assert exc.details == {"kind": "server", "status_code": 500}
    assert exc.recoverable is True
    assert NetworkFailure().kind == FailureKind.UNREACHABLE


def test_reconciliation_failure() -> None:
    exc = ReconciliationFailure("tenant", temp_id="T-1", server_id=42)
    assert exc.error_code == "RECONCILIATION_FAILURE"
    assert exc.details == {"entity_type": "tenant", "temp_id": "T-1", "server_id": 42}
    assert "placeholder not found" in exc.message


def test_notification_exceptions() -> None:
    assert StaleNotification("team/7", 3, 5).details["last_version"] == 5
    assert ScopeMismatch({"tenant_id": "a"}, {"tenant_id": "b"}).error_code == "SCOPE_MISMATCH"
    assert MalformedNotification("bad json").details == {"reason": "bad json"}
    assert PlaceholderConflict("T-1").details == {"temp_id": "T-1"}


def test_all_console_errors_share_base() -> None:
    for exc in (NetworkFailure(), PlaceholderConflict("T-1"), MalformedNotification("x")):
        assert isinstance(exc, ConsoleException)
