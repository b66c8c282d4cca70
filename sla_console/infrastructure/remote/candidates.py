"""Ordered fallback across equivalent remote endpoints.

A write is tried against each candidate in turn, but only while it is
certain the previous attempt had no effect: the server could not be
reached, or it does not implement the endpoint. Any other failure stops
the chain, since a non-idempotent write may already have been applied.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence

from sla_console.domain.enums import FailureKind
from sla_console.domain.exceptions import NetworkFailure
from sla_console.domain.mutations import ServerRecord

logger = logging.getLogger(__name__)

Candidate = Callable[[str], Awaitable[ServerRecord]]


def classify_failure(exc: BaseException) -> FailureKind | None:
    """Return the FailureKind of exc, or None if it is not a transport failure."""
    if isinstance(exc, NetworkFailure):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return FailureKind.TIMEOUT
    if isinstance(exc, ConnectionError):
        return FailureKind.UNREACHABLE
    return None


class CandidateChain:
    """RemoteCall that tries candidates in order.

    Usable anywhere a RemoteCall is expected: await chain(correlation_id).
    The last failure is re-raised unchanged.
    """

    def __init__(
        self,
        candidates: Sequence[Candidate],
        classify: Callable[[BaseException], FailureKind | None] = classify_failure,
        labels: Sequence[str] | None = None,
    ) -> None:
        if not candidates:
            raise ValueError("CandidateChain needs at least one candidate")
        self._candidates = list(candidates)
        self._classify = classify
        self._labels = list(labels) if labels else [str(i) for i in range(len(candidates))]

    def __len__(self) -> int:
        return len(self._candidates)

    async def __call__(self, correlation_id: str) -> ServerRecord:
        last_index = len(self._candidates) - 1
        for index, candidate in enumerate(self._candidates):
            try:
                return await candidate(correlation_id)
            except Exception as e:
                kind = self._classify(e)
                if index == last_index or kind is None or not kind.allows_fallback:
                    raise
                logger.warning(
                    "Candidate %s failed (%s); trying %s",
                    self._labels[index],
                    kind.value,
                    self._labels[index + 1],
                )
        raise AssertionError("unreachable")
