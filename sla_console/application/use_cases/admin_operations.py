"""Admin console write operations built on the mutation executor.

Each method builds one Mutation (target keys, optimistic placeholder or
changes, remote write) and runs it; the invalidation cascade takes care
of every other view the change affects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

from sla_console.application.services.collection_patches import remove_record
from sla_console.core.constants import (
    PATH_CONFLICTS,
    PATH_NOTIFICATION_CHANNELS,
    PATH_PERMISSIONS,
    PATH_ROLES,
    PATH_TEAM_MEMBERS,
    PATH_TEAMS,
    PATH_TENANTS,
)
from sla_console.domain.enums import EntityType
from sla_console.domain.mutations import (
    CreateMutation,
    DeleteMutation,
    KeyUpdater,
    MutationResult,
    OptimisticRecord,
    Reconciler,
    RemoteCall,
    UpdateMutation,
)
from sla_console.domain.value_objects import CacheKey, MutationScope, ScopeValue
from sla_console.infrastructure.cache.keys import (
    active_tenants_key,
    conflicts_key,
    notification_channels_key,
    permissions_key,
    roles_key,
    team_key,
    team_members_key,
    teams_key,
    tenants_key,
)
from sla_console.shared.utils.generators import TemporaryIdFactory

if TYPE_CHECKING:
    from sla_console.application.services.mutation_executor import MutationExecutor
    from sla_console.schemas.admin import (
        ConflictResolution,
        NotificationChannelCreate,
        PermissionCreate,
        PermissionUpdate,
        RoleCreate,
        RoleUpdate,
        TeamCreate,
        TeamMemberAdd,
        TeamUpdate,
        TenantCreate,
        TenantUpdate,
    )


class WriteApi(Protocol):
    """What AdminOperations needs from the remote client."""

    def write(self, method: str, path: str, json: Any = None) -> RemoteCall: ...


class AdminOperations:
    """Tenant, team, role, permission, conflict, member and channel writes."""

    def __init__(
        self,
        executor: MutationExecutor,
        api: WriteApi,
        temp_ids: TemporaryIdFactory | None = None,
    ) -> None:
        self.executor = executor
        self.api = api
        self.temp_ids = temp_ids or TemporaryIdFactory()

    def _placeholder(self, fields: dict[str, Any]) -> OptimisticRecord:
        return OptimisticRecord(temp_id=self.temp_ids.next_id(), fields=fields)

    async def _create(
        self,
        entity_type: EntityType,
        target_keys: tuple[CacheKey, ...],
        path: str,
        body: dict[str, Any],
        scope: MutationScope,
    ) -> MutationResult:
        return await self.executor.execute(
            CreateMutation(
                entity_type=entity_type,
                target_keys=target_keys,
                remote_call=self.api.write("POST", path, body),
                placeholder=self._placeholder(body),
                scope=scope,
            )
        )

    # ---- Tenants ----

    async def create_tenant(self, payload: TenantCreate) -> MutationResult:
        """Create a tenant; an active one also appears in the active-tenant filter."""
        targets = (tenants_key(), active_tenants_key()) if payload.is_active else (tenants_key(),)
        return await self._create(
            EntityType.TENANT, targets, PATH_TENANTS, payload.to_body(), MutationScope()
        )

    async def update_tenant(self, tenant_id: ScopeValue, payload: TenantUpdate) -> MutationResult:
        """Update a tenant; deactivating it also drops it from the active-tenant filter."""
        body = payload.to_body()
        key_patches: dict[CacheKey, KeyUpdater] = {}
        key_reconcilers: dict[CacheKey, Reconciler] = {}
        if payload.is_active is False:
            key_patches[active_tenants_key()] = lambda value: remove_record(value, tenant_id, "id")
            key_reconcilers[active_tenants_key()] = lambda value, server: remove_record(
                value, tenant_id, "id"
            )
        return await self.executor.execute(
            UpdateMutation(
                entity_type=EntityType.TENANT,
                target_keys=(tenants_key(), active_tenants_key()),
                remote_call=self.api.write("PUT", f"{PATH_TENANTS}/{tenant_id}", body),
                record_id=tenant_id,
                changes=body,
                scope=MutationScope(tenant_id=tenant_id),
                key_patches=key_patches,
                key_reconcilers=key_reconcilers,
            )
        )

    # ---- Teams ----

    async def create_team(self, payload: TeamCreate) -> MutationResult:
        return await self._create(
            EntityType.TEAM,
            (teams_key(),),
            PATH_TEAMS,
            payload.to_body(),
            MutationScope(tenant_id=payload.tenant_id),
        )

    async def update_team(
        self,
        team_id: ScopeValue,
        payload: TeamUpdate,
        tenant_id: ScopeValue = None,
    ) -> MutationResult:
        """Update a team in the team list and in its detail view."""
        body = payload.to_body()
        return await self.executor.execute(
            UpdateMutation(
                entity_type=EntityType.TEAM,
                target_keys=(teams_key(), team_key(team_id)),
                remote_call=self.api.write("PUT", f"{PATH_TEAMS}/{team_id}", body),
                record_id=team_id,
                changes=body,
                scope=MutationScope(tenant_id=tenant_id, team_id=team_id),
            )
        )

    async def delete_team(self, team_id: ScopeValue, tenant_id: ScopeValue = None) -> MutationResult:
        return await self.executor.execute(
            DeleteMutation(
                entity_type=EntityType.TEAM,
                target_keys=(teams_key(),),
                remote_call=self.api.write("DELETE", f"{PATH_TEAMS}/{team_id}"),
                record_id=team_id,
                scope=MutationScope(tenant_id=tenant_id, team_id=team_id),
            )
        )

    # ---- Roles (identified by role_name) ----

    async def create_role(self, payload: RoleCreate) -> MutationResult:
        return await self._create(
            EntityType.ROLE, (roles_key(),), PATH_ROLES, payload.to_body(), MutationScope()
        )

    async def update_role(self, role_name: str, payload: RoleUpdate) -> MutationResult:
        body = payload.to_body()
        return await self.executor.execute(
            UpdateMutation(
                entity_type=EntityType.ROLE,
                target_keys=(roles_key(),),
                remote_call=self.api.write("PATCH", f"{PATH_ROLES}/{role_name}", body),
                record_id=role_name,
                changes=body,
                id_field="role_name",
            )
        )

    async def delete_role(self, role_name: str) -> MutationResult:
        return await self.executor.execute(
            DeleteMutation(
                entity_type=EntityType.ROLE,
                target_keys=(roles_key(),),
                remote_call=self.api.write("DELETE", f"{PATH_ROLES}/{role_name}"),
                record_id=role_name,
                id_field="role_name",
            )
        )

    # ---- Permissions (identified by permission_name) ----

    async def create_permission(self, payload: PermissionCreate) -> MutationResult:
        return await self._create(
            EntityType.PERMISSION,
            (permissions_key(),),
            PATH_PERMISSIONS,
            payload.to_body(),
            MutationScope(),
        )

    async def update_permission(
        self, permission_name: str, payload: PermissionUpdate
    ) -> MutationResult:
        body = payload.to_body()
        return await self.executor.execute(
            UpdateMutation(
                entity_type=EntityType.PERMISSION,
                target_keys=(permissions_key(),),
                remote_call=self.api.write(
                    "PATCH", f"{PATH_PERMISSIONS}/{permission_name}", body
                ),
                record_id=permission_name,
                changes=body,
                id_field="permission_name",
            )
        )

    async def delete_permission(self, permission_name: str) -> MutationResult:
        return await self.executor.execute(
            DeleteMutation(
                entity_type=EntityType.PERMISSION,
                target_keys=(permissions_key(),),
                remote_call=self.api.write("DELETE", f"{PATH_PERMISSIONS}/{permission_name}"),
                record_id=permission_name,
                id_field="permission_name",
            )
        )

    # ---- Conflicts ----

    async def resolve_conflict(
        self,
        conflict_id: ScopeValue,
        resolution: ConflictResolution,
        tenant_id: ScopeValue = None,
        entity_id: ScopeValue = None,
    ) -> MutationResult:
        """Mark a conflict resolved; the affected entity's views are refreshed."""
        body = resolution.to_body()
        return await self.executor.execute(
            UpdateMutation(
                entity_type=EntityType.CONFLICT,
                target_keys=(conflicts_key(),),
                remote_call=self.api.write(
                    "POST", f"{PATH_CONFLICTS}/{conflict_id}/resolve", body
                ),
                record_id=conflict_id,
                changes={"status": "resolved", **body},
                scope=MutationScope(tenant_id=tenant_id, entity_id=entity_id),
            )
        )

    # ---- Team members ----

    async def add_team_member(
        self,
        tenant_id: ScopeValue,
        team_id: ScopeValue,
        payload: TeamMemberAdd,
    ) -> MutationResult:
        return await self._create(
            EntityType.TEAM_MEMBER,
            (team_members_key(tenant_id, team_id),),
            PATH_TEAM_MEMBERS.format(team_id=team_id),
            payload.to_body(),
            MutationScope(tenant_id=tenant_id, team_id=team_id),
        )

    async def remove_team_member(
        self,
        tenant_id: ScopeValue,
        team_id: ScopeValue,
        user_id: ScopeValue,
    ) -> MutationResult:
        path = PATH_TEAM_MEMBERS.format(team_id=team_id)
        return await self.executor.execute(
            DeleteMutation(
                entity_type=EntityType.TEAM_MEMBER,
                target_keys=(team_members_key(tenant_id, team_id),),
                remote_call=self.api.write("DELETE", f"{path}/{user_id}"),
                record_id=user_id,
                id_field="user_id",
                scope=MutationScope(tenant_id=tenant_id, team_id=team_id),
            )
        )

    # ---- Notification channels ----

    async def create_notification_channel(
        self,
        team_id: ScopeValue,
        payload: NotificationChannelCreate,
        tenant_id: ScopeValue = None,
    ) -> MutationResult:
        return await self._create(
            EntityType.NOTIFICATION_CHANNEL,
            (notification_channels_key(team_id),),
            PATH_NOTIFICATION_CHANNELS.format(team_id=team_id),
            payload.to_body(),
            MutationScope(tenant_id=tenant_id, team_id=team_id),
        )

    async def delete_notification_channel(
        self,
        team_id: ScopeValue,
        channel_id: ScopeValue,
        tenant_id: ScopeValue = None,
    ) -> MutationResult:
        path = PATH_NOTIFICATION_CHANNELS.format(team_id=team_id)
        return await self.executor.execute(
            DeleteMutation(
                entity_type=EntityType.NOTIFICATION_CHANNEL,
                target_keys=(notification_channels_key(team_id),),
                remote_call=self.api.write("DELETE", f"{path}/{channel_id}"),
                record_id=channel_id,
                scope=MutationScope(tenant_id=tenant_id, team_id=team_id),
            )
        )
