"""ID generators: CUID2 correlation ids and temporary placeholder ids."""

import time
from collections.abc import Callable

from cuid2 import cuid_wrapper

from sla_console.core.constants import TEMP_ID_PREFIX

cuid_generator = cuid_wrapper()


def generate_cuid() -> str:
    """Generate a collision-resistant unique identifier (CUID2).

    Used for mutation correlation ids and pending-mutation ids.

    Returns:
        A new CUID string.
    """
    result = cuid_generator()
    if not isinstance(result, str):
        raise TypeError(
            f"Expected str from cuid_generator, got {type(result).__name__}"
        )
    return result


class TemporaryIdFactory:
    """Issues temporary ids for optimistic placeholders (e.g. ``T-1700000000``).

    Ids are derived from the epoch-seconds clock but strictly increase within
    the process, so two creates in the same second never share a placeholder id.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def next_id(self) -> str:
        """Return the next temporary id."""
        candidate = int(self._clock())
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return f"{TEMP_ID_PREFIX}{candidate}"
