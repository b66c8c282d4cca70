"""Application services: the cache consistency engine."""

from sla_console.application.services.invalidation_resolver import (
    InvalidationResolver,
    InvalidationRule,
    KeyPredicate,
    ScopeRef,
    default_rules,
)
from sla_console.application.services.mutation_executor import MutationExecutor
from sla_console.application.services.origin_registry import OriginRegistry
from sla_console.application.services.realtime_sync import RealtimeSync

__all__ = [
    "InvalidationResolver",
    "InvalidationRule",
    "KeyPredicate",
    "MutationExecutor",
    "OriginRegistry",
    "RealtimeSync",
    "ScopeRef",
    "default_rules",
]
