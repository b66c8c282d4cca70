"""Pydantic schemas for wire formats: change notifications and admin writes."""

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
from sla_console.schemas.notification import ChangeNotification, NotificationScope

__all__ = [
    "ChangeNotification",
    "ConflictResolution",
    "NotificationChannelCreate",
    "NotificationScope",
    "PermissionCreate",
    "PermissionUpdate",
    "RoleCreate",
    "RoleUpdate",
    "TeamCreate",
    "TeamMemberAdd",
    "TeamUpdate",
    "TenantCreate",
    "TenantUpdate",
]
