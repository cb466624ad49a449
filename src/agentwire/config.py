"""Configuration: frozen dataclasses for models, providers, clients and agents.

API keys are auto-resolved from standard environment variables. Reading
configuration files is left to the caller; ``from_dict`` accepts the decoded
mapping.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
import os
import re
from typing import Any

from dotenv import load_dotenv

from agentwire.errors import ConfigurationError
from agentwire.retry import RetryPolicy

load_dotenv()

# Provider-specific credential environment variable names
_API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_OPENAI_API_KEY",
    "ollama": "OLLAMA_API_KEY",
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: str | float | int) -> float:
    """Parse ``"2m"``, ``"1h30m"``, ``"250ms"`` or plain seconds into seconds."""
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ConfigurationError(f"Duration must be >= 0, got {value}")
        return float(value)
    text = value.strip()
    if not text:
        raise ConfigurationError("Duration string is empty")
    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ConfigurationError(
            f"Invalid duration string {value!r}",
            hint="Use forms like '90s', '2m', '1h30m' or a number of seconds.",
        )
    return total


def _known(cls: type, data: Mapping[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        raise ConfigurationError(
            f"Unknown {cls.__name__} field(s): {', '.join(sorted(unknown))}",
            hint=f"Valid fields: {', '.join(sorted(names))}",
        )
    return dict(data)


@dataclass(frozen=True)
class ModelConfig:
    """Model name, capability format and per-protocol default options."""

    name: str
    format: str = "openai-standard"
    #: Protocol name -> default options, e.g. ``{"chat": {"temperature": 0.2}}``.
    options: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError(
                "Model name is required",
                hint="Pass ModelConfig(name='gpt-4o-mini') or similar.",
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ModelConfig:
        return cls(**_known(cls, data))


@dataclass(frozen=True)
class ProviderConfig:
    """Provider name, endpoint, credentials and provider-specific options.

    Example:
        ProviderConfig(name="openai", base_url="https://api.openai.com/v1",
                       model=ModelConfig(name="gpt-4o-mini"))
    """

    name: str = "ollama"
    base_url: str = "http://localhost:11434"
    model: ModelConfig = field(default_factory=lambda: ModelConfig(name="llama3.1:8b"))
    #: Auto-resolved from the provider's env var when *None*.
    api_key: str | None = None
    #: Provider-specific settings (deployment, api_version, auth_type, ...).
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Auto-resolve the API key and validate the endpoint."""
        if not self.name:
            raise ConfigurationError("Provider name is required")
        if not self.base_url or not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Invalid base_url for provider {self.name!r}: {self.base_url!r}",
                hint="base_url must be an http(s) URL.",
            )
        if self.api_key is None:
            env_var = _API_KEY_ENV_VARS.get(self.name)
            if env_var:
                object.__setattr__(self, "api_key", os.environ.get(env_var) or None)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ProviderConfig:
        values = _known(cls, data)
        model = values.get("model")
        if isinstance(model, Mapping):
            values["model"] = ModelConfig.from_dict(model)
        return cls(**values)

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderConfig(name={self.name!r}, base_url={self.base_url!r}, "
            f"model={self.model.name!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None})"
        )

    __repr__ = __str__


@dataclass(frozen=True)
class ClientConfig:
    """Transport and retry settings for a dispatch client."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    timeout_s: float = 120.0
    connection_pool_size: int = 10
    connection_timeout_s: float = 90.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This bounds each HTTP request in seconds.",
            )
        if self.connection_pool_size < 1:
            raise ConfigurationError(
                f"connection_pool_size must be >= 1, got {self.connection_pool_size}",
                hint="This caps pooled keep-alive connections.",
            )
        if self.connection_timeout_s < 0:
            raise ConfigurationError(
                f"connection_timeout_s must be >= 0, got {self.connection_timeout_s}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ClientConfig:
        values = _known(cls, data)
        if isinstance(values.get("provider"), Mapping):
            values["provider"] = ProviderConfig.from_dict(values["provider"])
        for key in ("timeout_s", "connection_timeout_s"):
            if key in values:
                values[key] = parse_duration(values[key])
        retry = values.get("retry")
        if isinstance(retry, Mapping):
            retry = dict(retry)
            for key in ("initial_delay_s", "max_delay_s"):
                if key in retry:
                    retry[key] = parse_duration(retry[key])
            try:
                values["retry"] = RetryPolicy(**retry)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid retry policy: {e}") from e
        return cls(**values)


@dataclass(frozen=True)
class AgentConfig:
    """Agent name, optional system prompt and client configuration."""

    name: str = "default-agent"
    system_prompt: str | None = None
    client: ClientConfig = field(default_factory=ClientConfig)

    def __post_init__(self) -> None:
        if self.system_prompt is not None and not isinstance(self.system_prompt, str):
            raise ConfigurationError(
                "system_prompt must be a string",
                hint="Pass system_prompt='You are a concise assistant.'",
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AgentConfig:
        values = _known(cls, data)
        if isinstance(values.get("client"), Mapping):
            values["client"] = ClientConfig.from_dict(values["client"])
        return cls(**values)
