"""Real-time change notification schema.

Wire format (JSON, camelCase):
{"entityType": "team", "operation": "update",
 "scope": {"tenantId": "acme", "teamId": 7},
 "version": 12, "correlationId": "..."}
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from sla_console.domain.enums import EntityType, Operation
from sla_console.domain.exceptions import MalformedNotification
from sla_console.domain.value_objects import MutationScope


class NotificationScope(BaseModel):
    """Tenant/team/entity a change applies to. Missing ids mean "any"."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True
    )

    tenant_id: str | int | None = None
    team_id: str | int | None = None
    entity_id: str | int | None = None

    def to_mutation_scope(self) -> MutationScope:
        return MutationScope(
            tenant_id=self.tenant_id, team_id=self.team_id, entity_id=self.entity_id
        )


class ChangeNotification(BaseModel):
    """A broadcast saying some server-side state changed."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True
    )

    entity_type: EntityType
    operation: Operation
    scope: NotificationScope = Field(default_factory=NotificationScope)
    version: int | None = Field(default=None, ge=0)
    correlation_id: str | None = None

    @classmethod
    def parse(cls, raw: bytes | str | dict[str, Any]) -> "ChangeNotification":
        """Parse a raw channel message.

        Raises:
            MalformedNotification: If the message is not valid JSON or does
                not match the notification shape.
        """
        try:
            if isinstance(raw, dict):
                return cls.model_validate(raw)
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedNotification(f"{e.error_count()} validation error(s)") from e
        except (TypeError, ValueError) as e:
            raise MalformedNotification(str(e)) from e

    def to_wire(self) -> str:
        """Serialize with camelCase field names."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def version_key(self) -> tuple[Any, ...]:
        """Identity used for version ordering: the entity if known, else its scope."""
        if self.scope.entity_id is not None:
            return (self.entity_type.value, self.scope.entity_id)
        return (self.entity_type.value, self.scope.tenant_id, self.scope.team_id)
