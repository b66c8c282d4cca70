"""Domain exceptions for the SLA console cache engine.

Defines the failure taxonomy of the mutation and real-time paths. These
exceptions are independent of transport concerns; the HTTP client and
the candidate chain translate transport errors into NetworkFailure.
"""

from typing import Any

from sla_console.domain.enums import FailureKind


class ConsoleException(Exception):
    """Base exception for all SLA console errors.

    All custom exceptions inherit from this class to allow consistent
    error handling and logging. UI layers read message, error_code and
    details to build a user-facing notification.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. status_code, temp_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class NetworkFailure(ConsoleException):
    """Raised when a remote call is rejected, times out or cannot be delivered.

    Recoverable from the caller's point of view: the optimistic change has
    been rolled back and the user may try again.
    """

    recoverable = True

    def __init__(
        self,
        message: str = "Remote call failed",
        kind: FailureKind = FailureKind.UNREACHABLE,
        status_code: int | None = None,
    ) -> None:
        """Initialize with message, failure kind and optional HTTP status.

        Args:
            message: Description of the failure.
            kind: Classification used by the candidate chain.
            status_code: HTTP status code when the server answered.
        """
        details: dict[str, Any] = {"kind": kind.value}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, "NETWORK_FAILURE", details)
        self.kind = kind
        self.status_code = status_code


class ReconciliationFailure(ConsoleException):
    """Raised when a server response cannot be matched to its optimistic placeholder.

    Indicates an id-scheme or protocol bug; the mutation is rolled back.
    """

    def __init__(
        self,
        entity_type: str,
        temp_id: str | None = None,
        server_id: Any = None,
        reason: str = "placeholder not found",
    ) -> None:
        """Initialize with the entity type, ids involved and reason.

        Args:
            entity_type: Entity type of the mutation.
            temp_id: Temporary id of the placeholder, if any.
            server_id: Id returned by the server, if any.
            reason: Short description of the mismatch.
        """
        super().__init__(
            f"Could not reconcile {entity_type}: {reason}",
            "RECONCILIATION_FAILURE",
            {"entity_type": entity_type, "temp_id": temp_id, "server_id": server_id},
        )


class PlaceholderConflict(ConsoleException):
    """Raised when a create reuses a placeholder id that another pending mutation holds."""

    def __init__(self, temp_id: str) -> None:
        """Initialize with the contested placeholder id.

        Args:
            temp_id: Temporary id already held by a pending mutation.
        """
        super().__init__(
            f"Placeholder already pending: {temp_id}",
            "PLACEHOLDER_CONFLICT",
            {"temp_id": temp_id},
        )


class StaleNotification(ConsoleException):
    """A real-time notification older than the last applied version. Dropped silently."""

    def __init__(self, entity: str, version: int, last_version: int) -> None:
        super().__init__(
            f"Stale notification for {entity}: version {version} <= {last_version}",
            "STALE_NOTIFICATION",
            {"entity": entity, "version": version, "last_version": last_version},
        )


class ScopeMismatch(ConsoleException):
    """A real-time notification for a context the session is not viewing. Dropped silently."""

    def __init__(self, scope: dict[str, Any], context: dict[str, Any]) -> None:
        super().__init__(
            "Notification scope outside current view context",
            "SCOPE_MISMATCH",
            {"scope": scope, "context": context},
        )


class MalformedNotification(ConsoleException):
    """A real-time message that could not be parsed. Dropped and logged."""

    def __init__(self, reason: str) -> None:
        super().__init__(
            f"Malformed notification: {reason}",
            "MALFORMED_NOTIFICATION",
            {"reason": reason},
        )
