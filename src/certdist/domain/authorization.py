"""
Allow-list check for requester public keys.

Every configured key is compared with a constant-time primitive and the loop
never exits early, so response timing reveals neither whether a key matched
nor which entry it matched.
"""

from __future__ import annotations

from collections.abc import Sequence
from hmac import compare_digest

from certdist.result import ErrorCode, Result


def is_authorized(candidate: str, allow_list: Sequence[str]) -> bool:
    """Return True iff candidate byte-equals at least one allow-list entry."""
    candidate_bytes = candidate.encode()
    found = False
    for allowed in allow_list:
        # Bitwise or: the comparison must run for every entry.
        found = compare_digest(allowed.encode(), candidate_bytes) | found
    return found


def authorize(candidate: str, allow_list: Sequence[str]) -> Result[str]:
    if is_authorized(candidate, allow_list):
        return Result.success(candidate)
    return Result.failure(ErrorCode.AUTHORIZATION_ERROR, "Public key not authorized")
