"""Provider registry: name -> factory building a provider from configuration."""

from __future__ import annotations

from collections.abc import Callable
import threading
from typing import TYPE_CHECKING

from agentwire.errors import ConfigurationError
from agentwire.providers.azure import AzureProvider
from agentwire.providers.ollama import OllamaProvider
from agentwire.providers.openai import OpenAIProvider

if TYPE_CHECKING:
    from agentwire.config import ProviderConfig
    from agentwire.providers.base import BaseProvider

ProviderFactory = Callable[["ProviderConfig"], "BaseProvider"]

_lock = threading.Lock()
_factories: dict[str, ProviderFactory] = {}


def register(name: str, factory: ProviderFactory) -> None:
    """Register (or replace) the factory for provider *name*."""
    with _lock:
        _factories[name] = factory


def create(config: ProviderConfig) -> BaseProvider:
    """Build the provider named by ``config.name``."""
    with _lock:
        factory = _factories.get(config.name)
    if factory is None:
        raise ConfigurationError(
            f"Unknown provider: {config.name!r}",
            hint=f"Registered providers: {', '.join(list_providers())}",
        )
    return factory(config)


def list_providers() -> list[str]:
    with _lock:
        return sorted(_factories)


register("openai", OpenAIProvider.from_config)
register("ollama", OllamaProvider.from_config)
register("azure", AzureProvider.from_config)
