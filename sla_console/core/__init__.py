"""Core: config, constants, and session bootstrap.

Single place for settings and shared constants.
"""

from sla_console.core.config import Settings, get_settings

__all__ = ["Settings", "get_settings"]
