"""Exception hierarchy for agentwire.

Every failure raised by the library derives from :class:`AgentwireError`.
Errors carry an optional ``hint`` for the caller plus diagnostic context
(protocol, model, agent) that outer layers fill in as the error bubbles up.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

_CONTEXT_FIELDS = ("protocol", "model", "provider", "agent_id", "agent_name")


class AgentwireError(Exception):
    """Base exception for all agentwire errors."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        protocol: str | None = None,
        model: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.hint = hint
        self.protocol = protocol
        self.model = model
        self.provider = provider
        self.agent_id: str | None = None
        self.agent_name: str | None = None

    def context(self) -> dict[str, str]:
        """Return the populated diagnostic context fields."""
        out: dict[str, str] = {}
        for name in _CONTEXT_FIELDS:
            value = getattr(self, name, None)
            if value:
                out[name] = str(value)
        return out

    def __str__(self) -> str:
        base = super().__str__()
        ctx = self.context()
        if not ctx:
            return base
        rendered = ", ".join(f"{k}={v}" for k, v in ctx.items())
        return f"{base} [{rendered}]"


class ConfigurationError(AgentwireError):
    """Configuration validation or resolution failed."""


class ProviderUnreachableError(AgentwireError):
    """The provider could not be reached (DNS, connect, read failures)."""

    def __init__(self, message: str, *, retryable: bool = True, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retryable = retryable


class ProviderError(AgentwireError):
    """The provider answered with a non-2xx status.

    Carries retry metadata so the retry policy can decide without brittle
    substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
        retryable: bool | None = None,
        retry_after_s: float | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body
        self.retryable = retryable
        self.retry_after_s = retry_after_s


class RateLimitError(ProviderError):
    """Rate limit exceeded (HTTP 429)."""


class InvalidOptionError(AgentwireError):
    """A request option failed schema validation."""

    def __init__(self, message: str, *, option: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.option = option


class UnsupportedProtocolError(AgentwireError):
    """The model or provider does not implement the requested protocol."""


class UnsupportedStreamingError(AgentwireError):
    """Streaming was requested for a protocol or capability that cannot stream."""


class EncodeError(AgentwireError):
    """A request could not be shaped into a provider wire body."""


class DecodeError(AgentwireError):
    """A provider response body could not be decoded."""


class StreamParseError(DecodeError):
    """A streaming event payload could not be parsed into a chunk."""


class UnexpectedResponseTypeError(AgentwireError):
    """A dispatch returned a response variant other than the one expected."""


class CancelledError(AgentwireError):
    """An operation's deadline expired before it completed.

    Task cancellation itself propagates as ``asyncio.CancelledError``.
    """


class RetryExhaustedError(AgentwireError):
    """All retry attempts failed; ``last`` holds the final failure."""

    def __init__(self, message: str, *, attempts: int, last: BaseException, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.last = last


class StepError(AgentwireError):
    """A sequential or parallel processing step failed for one item."""

    def __init__(self, message: str, *, index: int, item: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.index = index
        self.item = item


def with_context(exc: AgentwireError, **context: str | None) -> AgentwireError:
    """Return *exc* re-issued with unset context fields filled in.

    The result is a new instance of the same class chained to *exc* via
    ``__cause__``; values already set are never clobbered. When there is
    nothing to add, *exc* itself is returned. The same exception instance
    may be observed by several callers, so it is not mutated in place.
    """
    updates = {
        name: value
        for name, value in context.items()
        if value is not None and getattr(exc, name, None) is None
    }
    if not updates:
        return exc
    cls = type(exc)
    wrapped = cls.__new__(cls, *exc.args)
    wrapped.__dict__.update(exc.__dict__)
    wrapped.__dict__.update(updates)
    wrapped.__cause__ = exc
    return wrapped


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
