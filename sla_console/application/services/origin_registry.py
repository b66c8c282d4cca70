"""Correlation ids issued by this session, for self-echo suppression."""

import logging
from collections import OrderedDict

logger = logging.getLogger(__name__)


class OriginRegistry:
    """Remembers which changes this session originated.

    An id is active while its mutation is pending. Once the mutation
    settles the id moves to a bounded recent window, so a broadcast that
    arrives after the write completed is still recognised as our own.
    """

    def __init__(self, retention: int = 256) -> None:
        if retention < 0:
            raise ValueError("retention must not be negative")
        self._retention = retention
        self._active: set[str] = set()
        self._recent: OrderedDict[str, None] = OrderedDict()

    def register(self, correlation_id: str) -> None:
        """Mark correlation_id as in use by a pending mutation."""
        self._active.add(correlation_id)

    def settle(self, correlation_id: str) -> None:
        """Move correlation_id from active to the recent window."""
        self._active.discard(correlation_id)
        if self._retention == 0:
            return
        self._recent[correlation_id] = None
        self._recent.move_to_end(correlation_id)
        while len(self._recent) > self._retention:
            self._recent.popitem(last=False)

    def discard(self, correlation_id: str) -> None:
        """Forget correlation_id (the mutation was rolled back)."""
        self._active.discard(correlation_id)
        self._recent.pop(correlation_id, None)

    def is_own(self, correlation_id: str | None) -> bool:
        """Return True if correlation_id was issued by this session."""
        if not correlation_id:
            return False
        return correlation_id in self._active or correlation_id in self._recent

    def __contains__(self, correlation_id: object) -> bool:
        return isinstance(correlation_id, str) and self.is_own(correlation_id)

    def __len__(self) -> int:
        return len(self._active) + len(self._recent)
