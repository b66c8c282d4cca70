"""Shared utilities: telemetry, time and id helpers.

Used by domain, application, and infrastructure. No business logic.
"""

from sla_console.shared.utils import (
    TemporaryIdFactory,
    generate_cuid,
    seconds_since,
    utc_now,
)

__all__ = [
    "generate_cuid",
    "utc_now",
    "seconds_since",
    "TemporaryIdFactory",
]
