"""Invalidation cascades: which cached views a change makes stale.

A static rule table maps (entity type, operation) to key templates.
Templates mix literal key components with ScopeRef placeholders that are
filled from the change's MutationScope. A placeholder whose value is
missing truncates the template there, widening the affected key to its
parent prefix (over-invalidation is safe; under-invalidation is not).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from sla_console.core.constants import (
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
from sla_console.domain.enums import EntityType, Operation
from sla_console.domain.value_objects import CacheKey, MutationScope, Scalar
from sla_console.infrastructure.cache.keys import is_prefix

if TYPE_CHECKING:
    from sla_console.core.config import Settings
    from sla_console.infrastructure.cache.cache_protocol import CacheStoreProtocol

logger = logging.getLogger(__name__)


class ScopeRef(str, Enum):
    """Placeholder in a key template, filled from MutationScope."""

    TENANT = "tenant_id"
    TEAM = "team_id"
    ENTITY = "entity_id"


KeyTemplate = tuple[Scalar | ScopeRef, ...]

WRITES = frozenset({Operation.CREATE, Operation.UPDATE, Operation.DELETE})


@dataclass(frozen=True)
class KeyPredicate:
    """Matches every cache key that starts with prefix."""

    prefix: CacheKey

    def __call__(self, key: CacheKey) -> bool:
        return is_prefix(self.prefix, key)

    def subsumes(self, other: KeyPredicate) -> bool:
        """Return True if every key other matches is also matched by self."""
        return is_prefix(self.prefix, other.prefix)


MATCH_ALL = KeyPredicate(())


@dataclass(frozen=True)
class InvalidationRule:
    """Keys affected when an entity type undergoes one of operations."""

    entity_type: EntityType
    operations: frozenset[Operation]
    affected: tuple[KeyTemplate, ...]

    def applies_to(self, entity_type: EntityType, operation: Operation) -> bool:
        return entity_type == self.entity_type and operation in self.operations


def expand_template(template: KeyTemplate, scope: MutationScope) -> CacheKey:
    """Fill ScopeRef placeholders from scope, truncating at the first missing one."""
    key: list[Scalar] = []
    for component in template:
        if isinstance(component, ScopeRef):
            value = scope.get(component.value)
            if value is None:
                break
            key.append(value)
        else:
            key.append(component)
    return tuple(key)


def collapse(predicates: Iterable[KeyPredicate]) -> list[KeyPredicate]:
    """Drop duplicates and predicates subsumed by a broader one.

    Order of first appearance is kept among the survivors.
    """
    unique = list(dict.fromkeys(predicates))
    return [
        predicate
        for predicate in unique
        if not any(
            other != predicate and other.subsumes(predicate) for other in unique
        )
    ]


def default_rules(cascade_role_to_user_permissions: bool = False) -> list[InvalidationRule]:
    """Return the console's canonical rule table."""
    role_keys: tuple[KeyTemplate, ...] = ((KEY_ROLES,),)
    if cascade_role_to_user_permissions:
        role_keys += ((KEY_USER_PERMISSIONS,),)
    return [
        InvalidationRule(
            EntityType.TENANT,
            WRITES,
            (
                (KEY_TENANTS,),
                (KEY_DASHBOARD_SUMMARY, ScopeRef.TENANT),
                (KEY_ENTITIES, ScopeRef.TENANT),
            ),
        ),
        InvalidationRule(
            EntityType.TEAM,
            WRITES,
            (
                (KEY_TEAMS,),
                (KEY_TENANT_TEAM_COUNT, ScopeRef.TENANT),
                (KEY_DASHBOARD_SUMMARY, ScopeRef.TENANT),
                (KEY_TEAM_MEMBERS, ScopeRef.TENANT, ScopeRef.TEAM),
            ),
        ),
        InvalidationRule(
            EntityType.TEAM,
            frozenset({Operation.DELETE}),
            (
                (KEY_ENTITIES, ScopeRef.TENANT),
                (KEY_NOTIFICATION_CHANNELS, ScopeRef.TEAM),
            ),
        ),
        InvalidationRule(
            EntityType.TEAM_MEMBER,
            WRITES,
            (
                (KEY_TEAM_MEMBERS, ScopeRef.TENANT, ScopeRef.TEAM),
                (KEY_TEAMS,),
                (KEY_USERS,),
                (KEY_DASHBOARD_SUMMARY, ScopeRef.TENANT),
            ),
        ),
        InvalidationRule(EntityType.ROLE, WRITES, role_keys),
        InvalidationRule(EntityType.PERMISSION, WRITES, ((KEY_PERMISSIONS,), (KEY_ROLES,))),
        InvalidationRule(
            EntityType.CONFLICT,
            WRITES,
            (
                (KEY_CONFLICTS,),
                (KEY_ENTITIES, ScopeRef.TENANT),
                (KEY_ENTITY_DETAILS, ScopeRef.ENTITY),
            ),
        ),
        InvalidationRule(
            EntityType.NOTIFICATION_CHANNEL,
            WRITES,
            ((KEY_NOTIFICATION_CHANNELS, ScopeRef.TEAM),),
        ),
        InvalidationRule(
            EntityType.ENTITY,
            WRITES,
            (
                (KEY_ENTITIES, ScopeRef.TENANT, ScopeRef.TEAM),
                (KEY_ENTITY_DETAILS, ScopeRef.ENTITY),
                (KEY_TEAMS,),
                (KEY_DASHBOARD_SUMMARY, ScopeRef.TENANT),
            ),
        ),
        InvalidationRule(
            EntityType.USER,
            WRITES,
            ((KEY_USERS,), (KEY_TEAM_MEMBERS, ScopeRef.TENANT, ScopeRef.TEAM)),
        ),
    ]


class InvalidationResolver:
    """Turns a change into cache-key predicates and applies them to the store."""

    def __init__(
        self,
        store: CacheStoreProtocol,
        rules: Iterable[InvalidationRule] | None = None,
    ) -> None:
        self._store = store
        self._rules = list(rules) if rules is not None else default_rules()

    @classmethod
    def from_settings(cls, store: CacheStoreProtocol, settings: Settings) -> InvalidationResolver:
        return cls(store, default_rules(settings.cascade_role_to_user_permissions))

    @property
    def rules(self) -> list[InvalidationRule]:
        return list(self._rules)

    def resolve(
        self,
        entity_type: EntityType | str,
        operation: Operation | str,
        scope: MutationScope | None = None,
    ) -> list[KeyPredicate]:
        """Return the predicates a change invalidates. Pure; never raises.

        Unknown (entity type, operation) pairs resolve to no predicates;
        a REFRESH of any entity type resolves to the match-everything one.
        """
        try:
            entity_type = EntityType(entity_type)
            operation = Operation(operation)
        except ValueError:
            logger.debug("No invalidation rules for %s/%s", entity_type, operation)
            return []
        if operation == Operation.REFRESH:
            return [MATCH_ALL]
        scope = scope or MutationScope()
        predicates = [
            KeyPredicate(expand_template(template, scope))
            for rule in self._rules
            if rule.applies_to(entity_type, operation)
            for template in rule.affected
        ]
        return collapse(predicates)

    def apply(
        self,
        entity_type: EntityType | str,
        operation: Operation | str,
        scope: MutationScope | None = None,
    ) -> list[CacheKey]:
        """Mark every key matching the change's predicates stale.

        Returns:
            Keys that were marked stale.
        """
        invalidated: list[CacheKey] = []
        for predicate in self.resolve(entity_type, operation, scope):
            invalidated.extend(self._store.invalidate(predicate))
        logger.debug(
            "Invalidated %s key(s) for %s/%s",
            len(invalidated),
            getattr(entity_type, "value", entity_type),
            getattr(operation, "value", operation),
        )
        return invalidated
