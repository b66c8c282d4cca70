"""Domain value objects for the SLA console cache engine.

Value objects are immutable types with no identity, only value: the
scalar cache key, the scope a mutation touches and the context a
session is currently displaying.
"""

from dataclasses import asdict, dataclass
from typing import Any

Scalar = str | int | float | bool | None
CacheKey = tuple[Scalar, ...]
ScopeValue = str | int | None


@dataclass(frozen=True)
class MutationScope:
    """Identifiers touched by one change (tenant, team, entity).

    Used to turn invalidation templates into concrete keys; a missing
    value widens the affected key to its parent prefix.
    """

    tenant_id: ScopeValue = None
    team_id: ScopeValue = None
    entity_id: ScopeValue = None

    def get(self, name: str) -> ScopeValue:
        """Return the scope value for ``name`` (tenant_id, team_id, entity_id)."""
        return getattr(self, name, None)

    def as_dict(self) -> dict[str, Any]:
        """Return only the identifiers that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ViewContext:
    """Tenant/team the session currently displays. None means "all"."""

    tenant_id: ScopeValue = None
    team_id: ScopeValue = None

    def matches(self, scope: MutationScope) -> bool:
        """Return True if a change with ``scope`` is visible in this context.

        A field constrains the match only when both sides set it.
        """
        for name in ("tenant_id", "team_id"):
            mine = getattr(self, name)
            theirs = scope.get(name)
            if mine is not None and theirs is not None and mine != theirs:
                return False
        return True

    def as_dict(self) -> dict[str, Any]:
        """Return only the identifiers that are set."""
        return {k: v for k, v in asdict(self).items() if v is not None}
