"""Admin write payloads sent to the remote store.

Field names follow the admin API (snake_case). Partial updates exclude
unset fields so a PATCH/PUT only carries what the user changed.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _WritePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_body(self) -> dict[str, Any]:
        """Return the JSON body with unset fields omitted."""
        return self.model_dump(mode="json", exclude_unset=True)


class TenantCreate(_WritePayload):
    """New tenant."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class TenantUpdate(_WritePayload):
    """Partial tenant update."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None


class TeamCreate(_WritePayload):
    """New team within a tenant."""

    name: str = Field(..., min_length=1, max_length=255)
    tenant_id: str | int
    description: str | None = None
    team_email: list[str] = Field(default_factory=list)
    team_slack: list[str] = Field(default_factory=list)
    team_pagerduty: list[str] = Field(default_factory=list)
    is_active: bool = True


class TeamUpdate(_WritePayload):
    """Partial team update."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    team_email: list[str] | None = None
    team_slack: list[str] | None = None
    team_pagerduty: list[str] | None = None
    is_active: bool | None = None


class RoleCreate(_WritePayload):
    """New role. Roles are identified by role_name."""

    role_name: str = Field(..., min_length=1)
    description: str = ""
    role_permissions: list[str] = Field(default_factory=list)
    is_system_role: bool = False
    is_active: bool = True
    tenant_name: str | None = None
    team_name: str | None = None


class RoleUpdate(_WritePayload):
    """Partial role update."""

    description: str | None = None
    role_permissions: list[str] | None = None
    is_active: bool | None = None
    tenant_name: str | None = None
    team_name: str | None = None


class PermissionCreate(_WritePayload):
    """New permission. Permissions are identified by permission_name."""

    permission_name: str = Field(..., min_length=1)
    description: str = ""
    category: str = "Table"
    is_active: bool = True


class PermissionUpdate(_WritePayload):
    """Partial permission update."""

    description: str | None = None
    category: str | None = None
    is_active: bool | None = None


class ConflictResolution(_WritePayload):
    """Decision recorded when an ownership conflict is resolved."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    resolution_type: Literal["shared_ownership", "transfer_ownership", "split_entity"] = Field(
        default="shared_ownership", alias="resolutionType"
    )
    resolution_notes: str = Field(default="", alias="resolutionNotes")

    def to_body(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TeamMemberAdd(_WritePayload):
    """User joining a team."""

    user_id: str | int
    role: str = "member"


class NotificationChannelCreate(_WritePayload):
    """Notification channel (email, Slack or PagerDuty) for a team."""

    channel_type: Literal["email", "slack", "pagerduty"]
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
