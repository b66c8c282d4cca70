"""Remote store access: admin API client and candidate fallback chain."""

from sla_console.infrastructure.remote.api_client import AdminApiClient
from sla_console.infrastructure.remote.candidates import CandidateChain, classify_failure

__all__ = ["AdminApiClient", "CandidateChain", "classify_failure"]
