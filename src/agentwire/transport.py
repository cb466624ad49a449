"""HTTP transport: one pooled ``httpx.AsyncClient`` shared by every request."""

from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from typing import TYPE_CHECKING, Any

import httpx

from agentwire.config import ClientConfig
from agentwire.providers._errors import provider_error_from_response, wrap_transport_error

if TYPE_CHECKING:
    from agentwire.providers.base import PreparedRequest

log = logging.getLogger(__name__)


class TransportResponse:
    """A successful (2xx) response whose body may still be streaming."""

    def __init__(self, response: httpx.Response, *, provider: str = "http") -> None:
        self._response = response
        self._provider = provider
        self._closed = False

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self) -> bytes:
        """Read the full body and release the connection."""
        try:
            return await self._response.aread()
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self._provider) from e
        finally:
            await self.aclose()

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=self._provider) from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HTTPTransport:
    """Pooled HTTP transport.

    Usage:
        async with HTTPTransport(ClientConfig()) as transport:
            resp = await transport.send(prepared)
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or ClientConfig()
        limits = httpx.Limits(
            max_connections=self.config.connection_pool_size,
            max_keepalive_connections=self.config.connection_pool_size,
            keepalive_expiry=self.config.connection_timeout_s,
        )
        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=httpx.Timeout(self.config.timeout_s),
            transport=transport,
        )

    async def __aenter__(self) -> HTTPTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        prepared: PreparedRequest,
        *,
        stream: bool = False,
        provider: str = "http",
    ) -> TransportResponse:
        """Send *prepared* and return once the response headers have arrived.

        Non-2xx replies are read, closed and raised as ``ProviderError``.
        Unary bodies are buffered before returning; streaming bodies stay
        open until the caller releases them.
        """
        request = self._client.build_request(
            prepared.method,
            prepared.url,
            headers=dict(prepared.headers),
            content=prepared.body,
        )
        log.debug("HTTP %s %s (stream=%s)", prepared.method, prepared.url, stream)
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise wrap_transport_error(e, provider=provider) from e

        if not response.is_success:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            log.debug("HTTP %s from %s", response.status_code, prepared.url)
            raise provider_error_from_response(
                status_code=response.status_code,
                headers=response.headers,
                body=body,
                provider=provider,
            )

        if not stream:
            try:
                await response.aread()
            except httpx.HTTPError as e:
                raise wrap_transport_error(e, provider=provider) from e
            finally:
                await response.aclose()
        return TransportResponse(response, provider=provider)
