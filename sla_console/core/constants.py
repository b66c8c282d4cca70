"""Core constants: cache key roots, admin API paths and shared literal values.

Single source of truth for cache key structure (DRY). Key builders in
sla_console.infrastructure.cache.keys and the invalidation rule table both
use these roots, so a renamed view only changes here.
"""

# Cache key roots (first component of every CacheKey)
KEY_TENANTS = "tenants"
KEY_TEAMS = "teams"
KEY_TENANT_TEAM_COUNT = "tenant-team-count"
KEY_TEAM_MEMBERS = "team-members"
KEY_DASHBOARD_SUMMARY = "dashboard-summary"
KEY_ROLES = "roles"
KEY_PERMISSIONS = "permissions"
KEY_USER_PERMISSIONS = "user-permissions"
KEY_USERS = "users"
KEY_CONFLICTS = "conflicts"
KEY_NOTIFICATION_CHANNELS = "notification-channels"
KEY_ENTITIES = "entities"
KEY_ENTITY_DETAILS = "entity-details"

# Second component of the active-tenants view
ACTIVE_QUALIFIER = "active"

# Placeholder ids look like T-1700000000
TEMP_ID_PREFIX = "T-"

# Default record identity field returned by the admin API
DEFAULT_ID_FIELD = "id"

# Admin API paths (relative to the configured base URL)
PATH_TENANTS = "/api/admin/tenants"
PATH_TEAMS = "/api/admin/teams"
PATH_ROLES = "/api/admin/roles"
PATH_PERMISSIONS = "/api/admin/permissions"
PATH_CONFLICTS = "/api/admin/conflicts"
PATH_TEAM_MEMBERS = "/api/teams/{team_id}/members"
PATH_NOTIFICATION_CHANNELS = "/api/teams/{team_id}/notification-channels"

# Redis channel used when a notification carries no tenant
GLOBAL_CHANNEL_SUFFIX = "global"
