"""
Endpoint selection: eligibility filtering, ordering and sticky-session flags.
"""

from fundrouter.matching.candidate_pool import CandidatePool, fisher_yates
from fundrouter.matching.session_flags import SessionFlags, InMemorySessionFlags, flag_key

__all__ = [
    "CandidatePool",
    "fisher_yates",
    "SessionFlags",
    "InMemorySessionFlags",
    "flag_key",
]
