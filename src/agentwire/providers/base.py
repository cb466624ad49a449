"""Provider base: capability records, prepared requests and shared endpoint logic."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import json
from typing import Any

from agentwire._http import JSON_HEADERS, SSE_HEADERS
from agentwire.errors import EncodeError, UnsupportedProtocolError
from agentwire.models import Model
from agentwire.responses import Response, StreamingChunk
from agentwire.types import Protocol, ProtocolRequest


@dataclass(frozen=True)
class Capability:
    """A provider's implementation of a single protocol."""

    protocol: Protocol
    build_request: Callable[[Any, str], dict[str, Any]]
    parse_response: Callable[[bytes], Response]
    parse_chunk: Callable[[bytes], StreamingChunk] | None = None

    @property
    def supports_streaming(self) -> bool:
        return self.parse_chunk is not None


@dataclass(frozen=True)
class PreparedRequest:
    """A fully shaped HTTP request, ready for the transport."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        """Decode the body back into JSON (handy in tests and debug logs)."""
        return json.loads(self.body) if self.body else None


class BaseProvider:
    """Shared behaviour for OpenAI-compatible providers.

    Subclasses decide authentication and endpoint layout; the wire shapes
    come from the capability mapping.
    """

    name = "base"

    def __init__(
        self,
        *,
        base_url: str,
        model: Model,
        capabilities: Mapping[Protocol, Capability] | None = None,
    ) -> None:
        if capabilities is None:
            from agentwire.providers.capabilities import standard_capabilities

            capabilities = standard_capabilities()
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._capabilities = dict(capabilities)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r}, model={self.model.name!r})"

    def supports(self, protocol: Protocol) -> bool:
        return protocol in self._capabilities and self.model.supports(protocol)

    def capability(self, protocol: Protocol) -> Capability:
        """Return the capability for *protocol*, or raise if unsupported."""
        cap = self._capabilities.get(protocol)
        if cap is None or not self.model.supports(protocol):
            raise UnsupportedProtocolError(
                f"Provider {self.name} does not support protocol {protocol}",
                protocol=str(protocol),
                model=self.model.name,
                provider=self.name,
            )
        return cap

    def endpoint(self, protocol: Protocol) -> str:
        if protocol is Protocol.EMBEDDINGS:
            return f"{self.base_url}/embeddings"
        return f"{self.base_url}/chat/completions"

    def auth_headers(self) -> dict[str, str]:
        return {}

    def prepare(
        self,
        request: ProtocolRequest,
        body: Mapping[str, Any],
        *,
        stream: bool = False,
    ) -> PreparedRequest:
        """Serialize *body* for *request*'s protocol endpoint."""
        try:
            payload = json.dumps(body).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodeError(
                f"Request body for {request.protocol} is not JSON-serializable: {e}",
                protocol=str(request.protocol),
                model=self.model.name,
            ) from e
        headers = {**JSON_HEADERS, **self.auth_headers()}
        if stream:
            headers.update(SSE_HEADERS)
        return PreparedRequest(
            method="POST",
            url=self.endpoint(request.protocol),
            headers=headers,
            body=payload,
        )

    def build(self, request: ProtocolRequest, *, stream: bool = False) -> PreparedRequest:
        """Shape *request* with its capability and prepare it for sending."""
        cap = self.capability(request.protocol)
        body = cap.build_request(request, self.model.name)
        return self.prepare(request, body, stream=stream)
