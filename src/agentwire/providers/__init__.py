"""Provider implementations."""

from .azure import AzureProvider
from .base import BaseProvider, Capability, PreparedRequest
from .capabilities import standard_capabilities
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .registry import create, list_providers, register

__all__ = [
    "AzureProvider",
    "BaseProvider",
    "Capability",
    "OllamaProvider",
    "OpenAIProvider",
    "PreparedRequest",
    "create",
    "list_providers",
    "register",
    "standard_capabilities",
]
