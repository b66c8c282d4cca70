"""Use cases: admin console operations."""

from sla_console.application.use_cases.admin_operations import AdminOperations

__all__ = ["AdminOperations"]
