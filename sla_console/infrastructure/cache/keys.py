"""Cache key builders. Single place for key structure (DRY).

Keys are tuples of scalars compared structurally. A shorter key is a
prefix of every longer key sharing its leading components, so
("tenants",) covers ("tenants", "active"). Components must be scalars;
builders raise ValueError on anything else so unhashable or ambiguous
keys never reach the store.
"""

from collections.abc import Iterable

from sla_console.core.constants import (
    ACTIVE_QUALIFIER,
    KEY_CONFLICTS,
    KEY_DASHBOARD_SUMMARY,
    KEY_ENTITIES,
    KEY_ENTITY_DETAILS,
    KEY_NOTIFICATION_CHANNELS,
    KEY_PERMISSIONS,
    KEY_ROLES,
    KEY_TEAM_MEMBERS,
    KEY_TEAMS,
    KEY_TENANT_TEAM_COUNT,
    KEY_TENANTS,
    KEY_USER_PERMISSIONS,
    KEY_USERS,
)
from sla_console.domain.value_objects import CacheKey, Scalar

_SCALAR_TYPES = (str, int, float, bool, type(None))


def _validate_key_component(value: object, position: int) -> None:
    """Raise ValueError if value is not a scalar.

    Args:
        value: Component used in a cache key.
        position: Index of the component (for error message).

    Raises:
        ValueError: If value is not str, int, float, bool or None.
    """
    if not isinstance(value, _SCALAR_TYPES):
        raise ValueError(
            f"Cache key component {position} must be a scalar, got {type(value).__name__}"
        )


def cache_key(*components: Scalar) -> CacheKey:
    """Build a validated cache key from scalar components."""
    for position, value in enumerate(components):
        _validate_key_component(value, position)
    return tuple(components)


def as_cache_key(components: Iterable[Scalar]) -> CacheKey:
    """Build a validated cache key from any iterable of scalars."""
    return cache_key(*components)


def is_prefix(prefix: CacheKey, key: CacheKey) -> bool:
    """Return True if ``prefix`` equals the leading components of ``key``.

    Every key is a prefix of itself; the empty key is a prefix of all keys.
    """
    return len(prefix) <= len(key) and key[: len(prefix)] == prefix


def tenants_key() -> CacheKey:
    """Cache key for the admin tenant list."""
    return (KEY_TENANTS,)


def active_tenants_key() -> CacheKey:
    """Cache key for the active-tenant filter list."""
    return (KEY_TENANTS, ACTIVE_QUALIFIER)


def teams_key() -> CacheKey:
    """Cache key for the admin team list."""
    return (KEY_TEAMS,)


def team_key(team_id: Scalar) -> CacheKey:
    """Cache key for one team's details (lives under the team list)."""
    return cache_key(KEY_TEAMS, team_id)


def tenant_team_count_key(tenant_id: Scalar) -> CacheKey:
    """Cache key for the number of teams in a tenant."""
    return cache_key(KEY_TENANT_TEAM_COUNT, tenant_id)


def team_members_key(tenant_id: Scalar, team_id: Scalar) -> CacheKey:
    """Cache key for a team's member list (tenant + team)."""
    return cache_key(KEY_TEAM_MEMBERS, tenant_id, team_id)


def dashboard_summary_key(
    tenant_id: Scalar,
    team_id: Scalar = None,
    start: Scalar = None,
    end: Scalar = None,
) -> CacheKey:
    """Cache key for a dashboard summary (tenant, optional team and date range)."""
    return cache_key(KEY_DASHBOARD_SUMMARY, tenant_id, team_id, start, end)


def roles_key() -> CacheKey:
    """Cache key for the role list."""
    return (KEY_ROLES,)


def permissions_key() -> CacheKey:
    """Cache key for the permission list."""
    return (KEY_PERMISSIONS,)


def user_permissions_key(user_id: Scalar) -> CacheKey:
    """Cache key for the effective permissions of one user."""
    return cache_key(KEY_USER_PERMISSIONS, user_id)


def users_key() -> CacheKey:
    """Cache key for the user list."""
    return (KEY_USERS,)


def conflicts_key() -> CacheKey:
    """Cache key for the ownership-conflict list."""
    return (KEY_CONFLICTS,)


def notification_channels_key(team_id: Scalar) -> CacheKey:
    """Cache key for a team's notification channels."""
    return cache_key(KEY_NOTIFICATION_CHANNELS, team_id)


def entities_key(tenant_id: Scalar, team_id: Scalar = None) -> CacheKey:
    """Cache key for monitored entities of a tenant, optionally one team."""
    if team_id is None:
        return cache_key(KEY_ENTITIES, tenant_id)
    return cache_key(KEY_ENTITIES, tenant_id, team_id)


def entity_details_key(entity_id: Scalar) -> CacheKey:
    """Cache key for one monitored entity's details."""
    return cache_key(KEY_ENTITY_DETAILS, entity_id)
