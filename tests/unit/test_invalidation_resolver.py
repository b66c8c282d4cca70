"""Tests for InvalidationResolver: rule expansion, truncation and tie-breaks."""

from sla_console.application.services.invalidation_resolver import (
    InvalidationResolver,
    InvalidationRule,
    KeyPredicate,
    ScopeRef,
    collapse,
    default_rules,
    expand_template,
)
from sla_console.domain.enums import EntityType, EntryState, Operation
from sla_console.domain.value_objects import MutationScope
from sla_console.infrastructure.cache.keys import (
    active_tenants_key,
    dashboard_summary_key,
    entities_key,
    team_members_key,
    tenant_team_count_key,
    user_permissions_key,
)
from sla_console.infrastructure.cache.store import CacheStore


def _prefixes(predicates: list[KeyPredicate]) -> set[tuple]:
    return {predicate.prefix for predicate in predicates}


def test_expand_template_fills_scope() -> None:
    template = ("team-members", ScopeRef.TENANT, ScopeRef.TEAM)
    scope = MutationScope(tenant_id="acme", team_id=7)
    assert expand_template(template, scope) == ("team-members", "acme", 7)


def test_expand_template_truncates_at_missing_value() -> None:
    """A missing tenant widens the key to the whole family."""
    template = ("team-members", ScopeRef.TENANT, ScopeRef.TEAM)
    assert expand_template(template, MutationScope(team_id=7)) == ("team-members",)


def test_collapse_drops_subsumed_and_duplicates() -> None:
    predicates = [
        KeyPredicate(("teams", 7)),
        KeyPredicate(("teams",)),
        KeyPredicate(("roles",)),
        KeyPredicate(("roles",)),
    ]
    assert collapse(predicates) == [KeyPredicate(("teams",)), KeyPredicate(("roles",))]


def test_key_predicate_matches_prefix() -> None:
    predicate = KeyPredicate(("tenants",))
    assert predicate(active_tenants_key())
    assert not predicate(("teams",))


def test_team_update_cascade(resolver: InvalidationResolver) -> None:
    """A team change reaches the team list, counts, summaries and members."""
    predicates = resolver.resolve(
        EntityType.TEAM, Operation.UPDATE, MutationScope(tenant_id="acme", team_id=7)
    )
    assert _prefixes(predicates) == {
        ("teams",),
        ("tenant-team-count", "acme"),
        ("dashboard-summary", "acme"),
        ("team-members", "acme", 7),
    }


def test_team_delete_adds_entities_and_channels(resolver: InvalidationResolver) -> None:
    predicates = resolver.resolve(
        EntityType.TEAM, Operation.DELETE, MutationScope(tenant_id="acme", team_id=7)
    )
    assert ("entities", "acme") in _prefixes(predicates)
    assert ("notification-channels", 7) in _prefixes(predicates)


def test_tenant_create_without_scope_widens(resolver: InvalidationResolver) -> None:
    """With no tenant id, the tenant-scoped families are invalidated whole."""
    predicates = resolver.resolve(EntityType.TENANT, Operation.CREATE)
    assert _prefixes(predicates) == {("tenants",), ("dashboard-summary",), ("entities",)}


def test_refresh_matches_everything(resolver: InvalidationResolver) -> None:
    assert resolver.resolve(EntityType.ROLE, Operation.REFRESH) == [KeyPredicate(())]


def test_unknown_pair_resolves_to_nothing(resolver: InvalidationResolver) -> None:
    assert resolver.resolve("widget", "create") == []
    assert resolver.resolve(EntityType.TEAM, "explode") == []


def test_custom_rule_without_matching_operation(store: CacheStore) -> None:
    resolver = InvalidationResolver(
        store, [InvalidationRule(EntityType.USER, frozenset({Operation.DELETE}), (("users",),))]
    )
    assert resolver.resolve(EntityType.USER, Operation.UPDATE) == []


def test_role_cascade_is_opt_in(store: CacheStore) -> None:
    """Role changes reach per-user permission views only when enabled."""
    default = InvalidationResolver(store)
    assert _prefixes(default.resolve(EntityType.ROLE, Operation.UPDATE)) == {("roles",)}

    cascading = InvalidationResolver(store, default_rules(cascade_role_to_user_permissions=True))
    assert ("user-permissions",) in _prefixes(cascading.resolve(EntityType.ROLE, Operation.UPDATE))


def test_apply_marks_every_affected_key_stale(
    resolver: InvalidationResolver, store: CacheStore
) -> None:
    """Invalidation cascade completeness for a team update in tenant acme."""
    affected = [
        ("teams",),
        ("teams", 7),
        tenant_team_count_key("acme"),
        dashboard_summary_key("acme"),
        dashboard_summary_key("acme", 7, "2024-01-01", "2024-01-31"),
        team_members_key("acme", 7),
    ]
    untouched = [
        tenant_team_count_key("globex"),
        team_members_key("acme", 8),
        entities_key("acme"),
        user_permissions_key("u1"),
    ]
    for key in affected + untouched:
        store.set(key, [])

    invalidated = resolver.apply(
        EntityType.TEAM, Operation.UPDATE, MutationScope(tenant_id="acme", team_id=7)
    )

    assert set(invalidated) == set(affected)
    for key in affected:
        assert store.get(key).state == EntryState.STALE
    for key in untouched:
        assert store.get(key).state == EntryState.FRESH
