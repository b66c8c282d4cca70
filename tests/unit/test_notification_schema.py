"""Tests for the ChangeNotification wire schema."""

import pytest

from sla_console.domain.enums import EntityType, Operation
from sla_console.domain.exceptions import MalformedNotification
from sla_console.schemas.notification import ChangeNotification


def test_parse_camel_case_json() -> None:
    notification = ChangeNotification.parse(
        b'{"entityType": "team_member", "operation": "delete",'
        b' "scope": {"tenantId": "acme", "teamId": 7}, "version": 2,'
        b' "correlationId": "c1", "extra": true}'
    )
    assert notification.entity_type == EntityType.TEAM_MEMBER
    assert notification.operation == Operation.DELETE
    assert notification.scope.team_id == 7
    assert notification.correlation_id == "c1"
    assert notification.version_key() == ("team_member", "acme", 7)


def test_parse_accepts_snake_case_dict() -> None:
    notification = ChangeNotification.parse(
        {"entity_type": "conflict", "operation": "update", "scope": {"entity_id": 9}}
    )
    assert notification.version_key() == ("conflict", 9)
    assert notification.scope.to_mutation_scope().entity_id == 9


def test_parse_rejects_garbage() -> None:
    with pytest.raises(MalformedNotification):
        ChangeNotification.parse("{not json")
    with pytest.raises(MalformedNotification):
        ChangeNotification.parse({"entityType": "team"})
