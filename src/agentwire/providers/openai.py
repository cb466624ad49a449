"""OpenAI provider: bearer-token auth against the hosted API."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from agentwire.errors import ConfigurationError
from agentwire.models import Model
from agentwire.providers.base import BaseProvider, Capability

if TYPE_CHECKING:
    from agentwire.config import ProviderConfig
    from agentwire.types import Protocol

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider(BaseProvider):
    """OpenAI Chat Completions and Embeddings endpoints."""

    name = "openai"

    def __init__(
        self,
        *,
        model: Model,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        capabilities: Mapping[Protocol, Capability] | None = None,
    ) -> None:
        """Initialize with a model and an optional API key."""
        super().__init__(base_url=base_url, model=model, capabilities=capabilities)
        self.api_key = api_key

    def auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    @classmethod
    def from_config(cls, config: ProviderConfig) -> OpenAIProvider:
        if not config.api_key:
            raise ConfigurationError(
                "api_key required for the OpenAI provider",
                hint="Set OPENAI_API_KEY or pass ProviderConfig(api_key=...).",
                provider=cls.name,
            )
        return cls(
            model=Model.from_config(config.model),
            api_key=config.api_key,
            base_url=config.base_url,
        )
