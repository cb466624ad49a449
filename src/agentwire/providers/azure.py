"""Azure OpenAI provider: deployment-scoped endpoints with an API version."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

from agentwire.errors import ConfigurationError
from agentwire.models import Model
from agentwire.providers.base import BaseProvider, Capability
from agentwire.types import Protocol

if TYPE_CHECKING:
    from agentwire.config import ProviderConfig

_AUTH_TYPES = ("api_key", "bearer")


class AzureProvider(BaseProvider):
    """Azure OpenAI deployment.

    Example:
        AzureProvider(model=m, base_url="https://acct.openai.azure.com/openai",
                      deployment="gpt-4o", auth_type="api_key",
                      token="...", api_version="2024-06-01")
    """

    name = "azure"

    def __init__(
        self,
        *,
        model: Model,
        base_url: str,
        deployment: str,
        auth_type: str,
        token: str,
        api_version: str,
        capabilities: Mapping[Protocol, Capability] | None = None,
    ) -> None:
        for key, value in (
            ("deployment", deployment),
            ("auth_type", auth_type),
            ("token", token),
            ("api_version", api_version),
        ):
            if not value:
                raise ConfigurationError(
                    f"{key} is required for the Azure provider",
                    hint=f"Set ProviderConfig.options[{key!r}].",
                    provider=self.name,
                )
        if auth_type not in _AUTH_TYPES:
            raise ConfigurationError(
                f"Unknown Azure auth_type: {auth_type!r}",
                hint=f"Use one of: {', '.join(_AUTH_TYPES)}",
                provider=self.name,
            )
        super().__init__(base_url=base_url, model=model, capabilities=capabilities)
        self.deployment = deployment
        self.auth_type = auth_type
        self.token = token
        self.api_version = api_version

    def endpoint(self, protocol: Protocol) -> str:
        path = "embeddings" if protocol is Protocol.EMBEDDINGS else "chat/completions"
        return (
            f"{self.base_url}/deployments/{self.deployment}/{path}"
            f"?api-version={self.api_version}"
        )

    def auth_headers(self) -> dict[str, str]:
        if self.auth_type == "bearer":
            return {"Authorization": f"Bearer {self.token}"}
        return {"api-key": self.token}

    @classmethod
    def from_config(cls, config: ProviderConfig) -> AzureProvider:
        opts = config.options
        return cls(
            model=Model.from_config(config.model),
            base_url=config.base_url,
            deployment=opts.get("deployment", ""),
            auth_type=opts.get("auth_type", ""),
            token=opts.get("token") or config.api_key or "",
            api_version=opts.get("api_version", ""),
        )
