"""Tests for the traced decorator and span helpers."""

import pytest

from sla_console.shared.telemetry.tracing import add_span_attributes, add_span_event, traced


@traced("test.sync")
def _double(value: int) -> int:
    return value * 2


@traced()
async def _fail() -> None:
    raise RuntimeError("boom")


def test_traced_sync_returns_result() -> None:
    assert _double(4) == 8
    assert _double.__name__ == "_double"


@pytest.mark.asyncio
async def test_traced_async_propagates_errors() -> None:
    with pytest.raises(RuntimeError, match="boom"):
        await _fail()


def test_helpers_are_noops_without_active_span() -> None:
    add_span_attributes(entity_type="team")
    add_span_event("mutation.rollback", {"reason": "test"})
