"""Minimal async retry with explicit error contracts.

Design goals:
- Small API surface
- Explicit state (policy + attempt counters)
- No brittle substring matching for retry decisions
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import TYPE_CHECKING, TypeVar

import httpx

from agentwire._http import RETRYABLE_CLIENT_STATUS_CODES
from agentwire.errors import (
    CancelledError,
    DecodeError,
    EncodeError,
    InvalidOptionError,
    ProviderError,
    ProviderUnreachableError,
    RetryExhaustedError,
    UnexpectedResponseTypeError,
    UnsupportedProtocolError,
    UnsupportedStreamingError,
    _walk_exception_chain,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

log = logging.getLogger(__name__)

# Request-shape and decode errors: retrying cannot change the outcome.
# An exhausted inner retry loop has already spent its attempts.
_NEVER_RETRY: tuple[type[BaseException], ...] = (
    DecodeError,
    RetryExhaustedError,
    InvalidOptionError,
    UnsupportedProtocolError,
    UnsupportedStreamingError,
    EncodeError,
    UnexpectedResponseTypeError,
)

_NON_RETRYABLE_ATTR = "_agentwire_non_retryable"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy with exponential backoff and optional jitter."""

    max_attempts: int = 3
    initial_delay_s: float = 1.0
    backoff_multiplier: float = 2.0
    max_delay_s: float = 30.0
    jitter: bool = False  # "full jitter" when enabled

    def __post_init__(self) -> None:
        """Validate invariants to keep retry behavior predictable."""
        if self.max_attempts < 1:
            raise ValueError("RetryPolicy.max_attempts must be >= 1")
        if self.initial_delay_s < 0:
            raise ValueError("RetryPolicy.initial_delay_s must be >= 0")
        if self.backoff_multiplier <= 0:
            raise ValueError("RetryPolicy.backoff_multiplier must be > 0")
        if self.max_delay_s < 0:
            raise ValueError("RetryPolicy.max_delay_s must be >= 0")

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following *attempt* (1-based)."""
        base = self.initial_delay_s * (self.backoff_multiplier ** max(0, attempt - 1))
        base = min(self.max_delay_s, base)
        if base <= 0:
            return 0.0
        if not self.jitter:
            return base
        # Full jitter: random in [0, base] to avoid thundering herd.
        return random.random() * base  # noqa: S311


def mark_non_retryable(exc: BaseException) -> BaseException:
    """Flag *exc* so :func:`is_retryable` short-circuits on it."""
    setattr(exc, _NON_RETRYABLE_ATTR, True)
    return exc


def _retry_after_from_error(exc: BaseException) -> float | None:
    if isinstance(exc, ProviderError):
        v = exc.retry_after_s
        if isinstance(v, (int, float)) and v >= 0:
            return float(v)
    return None


def _is_transient_network_error(exc: BaseException) -> bool:
    for e in _walk_exception_chain(exc):
        if isinstance(e, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
            return True
        if isinstance(e, httpx.TransportError):
            return True
    return False


def is_retryable(exc: BaseException) -> bool:
    """Return True when an attempt failure should be retried.

    Contract:
    - Cancellation and expired deadlines are never retried.
    - Errors flagged via :func:`mark_non_retryable` are never retried.
    - Request-shape and decode errors (options, encoding, protocol, body
      parsing) are never retried.
    - :class:`RetryExhaustedError` from a nested retry loop is never retried.
    - Provider 4xx responses are not retried, except 408 and 429.
    - Everything else (5xx, unreachable provider, caller-defined
      failures) is retried.
    """
    if isinstance(exc, (asyncio.CancelledError, CancelledError)):
        return False
    if getattr(exc, _NON_RETRYABLE_ATTR, False):
        return False
    if isinstance(exc, _NEVER_RETRY):
        return False
    if isinstance(exc, ProviderError):
        if exc.retryable is not None:
            return exc.retryable
        status = exc.status_code
        if isinstance(status, int) and 400 <= status < 500:
            return status in RETRYABLE_CLIENT_STATUS_CODES
        return True
    if isinstance(exc, ProviderUnreachableError):
        return exc.retryable
    if _is_transient_network_error(exc):
        return True
    return isinstance(exc, Exception)


async def retry_async(
    attempt: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool] = is_retryable,
) -> T:
    """Run ``attempt(n)`` for n = 1..max_attempts until it succeeds.

    Non-retryable failures are re-raised unchanged. When every attempt fails,
    :class:`RetryExhaustedError` is raised from the last failure.
    """
    last_exc: BaseException | None = None

    for n in range(1, policy.max_attempts + 1):
        try:
            return await attempt(n)
        except Exception as exc:
            last_exc = exc
            if not should_retry(exc):
                raise
            if n >= policy.max_attempts:
                break

            delay = policy.delay_for(n)
            retry_after = _retry_after_from_error(exc)
            if retry_after is not None:
                delay = max(delay, retry_after)

            log.warning(
                "Attempt %d/%d failed (%s); retrying in %.2fs",
                n,
                policy.max_attempts,
                type(exc).__name__,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)

    if last_exc is None:  # pragma: no cover
        raise RuntimeError("retry_async exhausted without an exception")
    raise RetryExhaustedError(
        f"All {policy.max_attempts} attempts failed, last error: {last_exc}",
        attempts=policy.max_attempts,
        last=last_exc,
    ) from last_exc
