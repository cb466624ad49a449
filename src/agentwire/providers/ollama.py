"""Ollama provider: OpenAI-compatible ``/v1`` endpoints with optional auth."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from agentwire.errors import ConfigurationError
from agentwire.models import Model
from agentwire.providers.base import BaseProvider, Capability

if TYPE_CHECKING:
    from agentwire.config import ProviderConfig
    from agentwire.types import Protocol

_AUTH_TYPES = ("bearer", "api_key")


def _with_v1(base_url: str) -> str:
    trimmed = base_url.rstrip("/")
    return trimmed if trimmed.endswith("/v1") else f"{trimmed}/v1"


class OllamaProvider(BaseProvider):
    """Local or remote Ollama server.

    Authentication is off unless ``auth_type`` is set: ``bearer`` sends an
    ``Authorization`` header, ``api_key`` sends the token in ``auth_header``
    (``X-API-Key`` by default).
    """

    name = "ollama"

    def __init__(
        self,
        *,
        model: Model,
        base_url: str = "http://localhost:11434",
        auth_type: str | None = None,
        token: str | None = None,
        auth_header: str = "X-API-Key",
        capabilities: Mapping[Protocol, Capability] | None = None,
    ) -> None:
        if auth_type is not None and auth_type not in _AUTH_TYPES:
            raise ConfigurationError(
                f"Unknown Ollama auth_type: {auth_type!r}",
                hint=f"Use one of: {', '.join(_AUTH_TYPES)}",
                provider=self.name,
            )
        super().__init__(base_url=_with_v1(base_url), model=model, capabilities=capabilities)
        self.auth_type = auth_type
        self.token = token
        self.auth_header = auth_header or "X-API-Key"

    def auth_headers(self) -> dict[str, str]:
        if not self.auth_type or not self.token:
            return {}
        if self.auth_type == "bearer":
            return {"Authorization": f"Bearer {self.token}"}
        return {self.auth_header: self.token}

    @classmethod
    def from_config(cls, config: ProviderConfig) -> OllamaProvider:
        opts = config.options
        return cls(
            model=Model.from_config(config.model),
            base_url=config.base_url,
            auth_type=opts.get("auth_type"),
            token=opts.get("token") or config.api_key,
            auth_header=opts.get("auth_header") or "X-API-Key",
        )
