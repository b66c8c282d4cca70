"""Real-time channel protocol consumed by RealtimeSync (DIP)."""

from collections.abc import AsyncIterator
from typing import Protocol

from sla_console.domain.value_objects import ScopeValue


class ChangeChannel(Protocol):
    """A broadcast stream of raw change notifications.

    connect() and listen() raise ConnectionError or TimeoutError when the
    transport fails; listen() returning means the stream ended.
    """

    async def connect(self) -> None:
        """Open the connection and subscribe."""
        ...

    def listen(self) -> AsyncIterator[bytes | str]:
        """Yield raw messages as they arrive."""
        ...

    async def retarget(self, tenant_id: ScopeValue) -> None:
        """Follow another tenant, resubscribing in place when connected."""
        ...

    async def close(self) -> None:
        """Unsubscribe and release the connection. Safe to call twice."""
        ...
