"""Small HTTP-related constants shared across agentwire.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

# Client errors that are still worth retrying (timeout, rate limit).
RETRYABLE_CLIENT_STATUS_CODES: frozenset[int] = frozenset({408, 429})

# Retryable status codes shared by the transport and the retry policy.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset(
    {*RETRYABLE_CLIENT_STATUS_CODES, 500, 502, 503, 504}
)

SSE_HEADERS: dict[str, str] = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
}

JSON_HEADERS: dict[str, str] = {"Content-Type": "application/json"}


def is_retryable_status(status_code: int) -> bool:
    """Return True for 5xx and the retryable 4xx statuses."""
    if status_code in RETRYABLE_STATUS_CODES:
        return True
    return status_code >= 500
