"""Domain enumerations for the SLA console cache engine.

Enums represent fixed sets of domain values (entry states, entity types,
mutation operations, connection states, remote failure kinds).
"""

from enum import Enum


class EntryState(str, Enum):
    """Lifecycle state of a cache entry.

    Valid transitions: fresh -> stale -> in-flight -> fresh, and
    in-flight -> stale when a fetch fails or is invalidated mid-flight.
    """

    FRESH = "fresh"
    STALE = "stale"
    IN_FLIGHT = "in-flight"

    def can_transition_to(self, target: "EntryState") -> bool:
        """Return True if moving from this state to ``target`` is allowed."""
        return target in _ENTRY_TRANSITIONS[self]

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid state values as strings."""
        return [state.value for state in cls]


_ENTRY_TRANSITIONS: dict[EntryState, frozenset[EntryState]] = {
    EntryState.FRESH: frozenset({EntryState.STALE}),
    EntryState.STALE: frozenset({EntryState.IN_FLIGHT}),
    EntryState.IN_FLIGHT: frozenset({EntryState.FRESH, EntryState.STALE}),
}


class EntityType(str, Enum):
    """Admin entity kinds whose changes drive cache invalidation."""

    TENANT = "tenant"
    TEAM = "team"
    TEAM_MEMBER = "team_member"
    ROLE = "role"
    PERMISSION = "permission"
    CONFLICT = "conflict"
    NOTIFICATION_CHANNEL = "notification_channel"
    USER = "user"
    ENTITY = "entity"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid entity type values as strings."""
        return [entity.value for entity in cls]


class Operation(str, Enum):
    """Kind of change. REFRESH is broadcast-only and means "everything changed"."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    REFRESH = "refresh"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid operation values as strings."""
        return [op.value for op in cls]


class ConnectionState(str, Enum):
    """Real-time channel connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class SyncOutcome(str, Enum):
    """What RealtimeSync did with one inbound notification."""

    APPLIED = "applied"
    SELF_ECHO = "self_echo"
    STALE = "stale"
    SCOPE_MISMATCH = "scope_mismatch"
    MALFORMED = "malformed"


class FailureKind(str, Enum):
    """Classification of a failed remote call.

    Only failures where the write cannot have reached a server
    (UNREACHABLE) or the endpoint does not exist (UNAVAILABLE) may be
    retried against the next candidate endpoint.
    """

    UNREACHABLE = "unreachable"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    INTERRUPTED = "interrupted"
    SERVER = "server"
    REJECTED = "rejected"

    @property
    def allows_fallback(self) -> bool:
        """Return True if the next candidate endpoint may be tried."""
        return self in (FailureKind.UNREACHABLE, FailureKind.UNAVAILABLE)
