"""Shared utilities: UTC time helpers and id generators."""

from sla_console.shared.utils.datetime import seconds_since, utc_now
from sla_console.shared.utils.generators import TemporaryIdFactory, generate_cuid

__all__ = [
    "utc_now",
    "seconds_since",
    "generate_cuid",
    "TemporaryIdFactory",
]
