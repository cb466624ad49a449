"""Protocol dispatcher: typed request in, typed response (or chunk stream) out."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import TYPE_CHECKING, Any, TypeVar

from agentwire._timeouts import deadline, deadline_after
from agentwire.config import ClientConfig
from agentwire.errors import (
    AgentwireError,
    DecodeError,
    InvalidOptionError,
    ProviderError,
    ProviderUnreachableError,
    RetryExhaustedError,
    UnexpectedResponseTypeError,
    UnsupportedStreamingError,
    with_context,
)
from agentwire.providers import registry
from agentwire.retry import RetryPolicy, retry_async
from agentwire.streaming import ChunkStream
from agentwire.transport import HTTPTransport

if TYPE_CHECKING:
    from agentwire.models import Model
    from agentwire.providers.base import BaseProvider, Capability
    from agentwire.responses import Response
    from agentwire.types import ProtocolRequest

R = TypeVar("R")

log = logging.getLogger(__name__)

# Failures that say something about the provider rather than the request.
_HEALTH_ERRORS = (ProviderError, ProviderUnreachableError, RetryExhaustedError, DecodeError)


class Client:
    """Dispatches protocol requests to one provider over a shared transport.

    Unary calls are retried per the client's :class:`RetryPolicy`; streaming
    calls are never retried since chunks may already have been delivered.
    """

    def __init__(
        self,
        provider: BaseProvider,
        transport: HTTPTransport | None = None,
        *,
        retry: RetryPolicy | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.provider = provider
        self.transport = transport or HTTPTransport(self.config)
        self.retry = retry or self.config.retry
        self._health_lock = threading.Lock()
        self._healthy = True
        self._last_health_check = time.time()

    @classmethod
    def from_config(cls, config: ClientConfig) -> Client:
        """Build the provider through the registry and wire up a transport."""
        provider = registry.create(config.provider)
        return cls(provider, HTTPTransport(config), retry=config.retry, config=config)

    def __repr__(self) -> str:
        return f"Client(provider={self.provider!r}, healthy={self.is_healthy})"

    @property
    def model(self) -> Model:
        return self.provider.model

    @property
    def is_healthy(self) -> bool:
        with self._health_lock:
            return self._healthy

    @property
    def last_health_check(self) -> float:
        """Wall-clock time of the last health transition check."""
        with self._health_lock:
            return self._last_health_check

    def _set_healthy(self, healthy: bool) -> None:
        with self._health_lock:
            self._healthy = healthy
            self._last_health_check = time.time()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    def _resolve(self, request: ProtocolRequest) -> tuple[Capability, ProtocolRequest]:
        protocol = request.protocol
        cap = self.provider.capability(protocol)
        merged = self.model.merge_request_options(protocol, request.options)
        self.model.schema_for(protocol).validate(merged)
        return cap, dataclasses.replace(request, options=merged)

    def _context(self, exc: AgentwireError, request: ProtocolRequest) -> AgentwireError:
        if isinstance(exc, _HEALTH_ERRORS):
            self._set_healthy(False)
        return with_context(
            exc,
            protocol=str(request.protocol),
            model=self.model.name,
            provider=self.provider.name,
        )

    async def execute(self, request: ProtocolRequest, *, timeout: float | None = None) -> Response:
        """Run a unary request and return the parsed response variant."""
        log.debug(
            "Dispatch %s to %s (model=%s)", request.protocol, self.provider.name, self.model.name
        )
        try:
            async with deadline(deadline_after(timeout), f"{request.protocol} request"):
                cap, resolved = self._resolve(request)
                if resolved.stream:
                    raise InvalidOptionError(
                        "execute() cannot serve a streaming request",
                        option="stream",
                        hint="Use execute_stream() or dispatch() for stream=True.",
                    )
                prepared = self.provider.prepare(
                    resolved, cap.build_request(resolved, self.model.name)
                )

                async def attempt(n: int) -> Response:
                    if n > 1:
                        log.debug("Retrying %s (attempt %d)", request.protocol, n)
                    resp = await self.transport.send(prepared, provider=self.provider.name)
                    return cap.parse_response(await resp.read())

                result = await retry_async(attempt, policy=self.retry)
        except AgentwireError as e:
            raise self._context(e, request)
        self._set_healthy(True)
        return result

    async def execute_stream(
        self, request: ProtocolRequest, *, timeout: float | None = None
    ) -> ChunkStream:
        """Open a streaming request; returns once the response headers arrive.

        The *timeout* covers the whole stream, not just the open.
        """
        protocol = request.protocol
        log.debug("Stream %s to %s (model=%s)", protocol, self.provider.name, self.model.name)
        when = deadline_after(timeout)
        try:
            if not protocol.supports_streaming:
                raise UnsupportedStreamingError(f"Protocol {protocol} does not support streaming")
            cap = self.provider.capability(protocol)
            if cap.parse_chunk is None:
                raise UnsupportedStreamingError(
                    f"Provider {self.provider.name} cannot stream {protocol}"
                )
            forced = dataclasses.replace(request, options={**request.options, "stream": True})
            cap, resolved = self._resolve(forced)
            prepared = self.provider.prepare(
                resolved, cap.build_request(resolved, self.model.name), stream=True
            )
            async with deadline(when, f"{protocol} stream"):
                resp = await self.transport.send(
                    prepared, stream=True, provider=self.provider.name
                )
        except AgentwireError as e:
            raise self._context(e, request)
        self._set_healthy(True)
        assert cap.parse_chunk is not None

        def on_error(exc: BaseException) -> BaseException:
            if isinstance(exc, AgentwireError):
                return self._context(exc, request)
            return exc

        return ChunkStream(
            resp.aiter_bytes(),
            cap.parse_chunk,
            release=resp.aclose,
            deadline=when,
            name=f"{self.provider.name}-{protocol}",
            on_error=on_error,
        )

    async def dispatch(
        self, request: ProtocolRequest, *, timeout: float | None = None
    ) -> Response | ChunkStream:
        """Route on the ``stream`` option after model defaults are merged."""
        merged = self.model.merge_request_options(request.protocol, request.options)
        if merged.get("stream"):
            return await self.execute_stream(request, timeout=timeout)
        return await self.execute(request, timeout=timeout)


def expect(response: object, cls: type[R]) -> R:
    """Assert that *response* is exactly the *cls* variant."""
    if type(response) is not cls:
        raise UnexpectedResponseTypeError(
            f"Expected {cls.__name__}, got {type(response).__name__}"
        )
    return response  # type: ignore[return-value]

