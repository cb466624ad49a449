"""Configuration boundary tests."""

from __future__ import annotations

import pytest

from agentwire.config import (
    AgentConfig,
    ClientConfig,
    ModelConfig,
    ProviderConfig,
    parse_duration,
)
from agentwire.errors import ConfigurationError
from agentwire.retry import RetryPolicy

pytestmark = pytest.mark.unit


def test_defaults_target_local_ollama() -> None:
    cfg = AgentConfig()
    assert cfg.name == "default-agent"
    assert cfg.system_prompt is None
    assert cfg.client.provider.name == "ollama"
    assert cfg.client.provider.base_url == "http://localhost:11434"
    assert cfg.client.timeout_s == 120.0
    assert cfg.client.connection_pool_size == 10
    assert cfg.client.retry == RetryPolicy()


def test_openai_api_key_auto_resolves_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    cfg = ProviderConfig(name="openai", base_url="https://api.openai.com/v1")
    assert cfg.api_key == "env-key"


def test_explicit_api_key_takes_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    cfg = ProviderConfig(name="openai", api_key="explicit-key")
    assert cfg.api_key == "explicit-key"


def test_azure_token_resolves_from_azure_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AZURE_OPENAI_API_KEY", "azure-secret")
    cfg = ProviderConfig(name="azure", base_url="https://acct.openai.azure.com/openai")
    assert cfg.api_key == "azure-secret"


def test_repr_redacts_api_key() -> None:
    cfg = ProviderConfig(name="openai", api_key="top-secret")
    assert "top-secret" not in repr(cfg)
    assert "[REDACTED]" in repr(cfg)


def test_invalid_base_url_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="Invalid base_url") as exc:
        ProviderConfig(base_url="localhost:11434")
    assert exc.value.hint is not None


def test_model_name_required() -> None:
    with pytest.raises(ConfigurationError, match="Model name is required"):
        ModelConfig(name="")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("90s", 90.0),
        ("2m", 120.0),
        ("1h30m", 5400.0),
        ("250ms", 0.25),
        (45, 45.0),
        (1.5, 1.5),
    ],
)
def test_parse_duration(value: str | float, expected: float) -> None:
    assert parse_duration(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", ["", "2 minutes", "m2", "-3s", True])
def test_parse_duration_rejects_garbage(value: object) -> None:
    with pytest.raises(ConfigurationError):
        parse_duration(value)  # type: ignore[arg-type]


def test_agent_config_from_dict_builds_nested_dataclasses() -> None:
    cfg = AgentConfig.from_dict(
        {
            "name": "classifier",
            "system_prompt": "You are concise.",
            "client": {
                "timeout_s": "2m",
                "connection_timeout_s": "90s",
                "retry": {"max_attempts": 5, "initial_delay_s": "500ms"},
                "provider": {
                    "name": "ollama",
                    "base_url": "http://gpu-box:11434",
                    "model": {
                        "name": "llava:13b",
                        "format": "openai-chat",
                        "options": {"chat": {"temperature": 0.1}},
                    },
                },
            },
        }
    )

    assert cfg.name == "classifier"
    assert cfg.client.timeout_s == 120.0
    assert cfg.client.retry.max_attempts == 5
    assert cfg.client.retry.initial_delay_s == pytest.approx(0.5)
    assert cfg.client.provider.model.name == "llava:13b"
    assert cfg.client.provider.model.options == {"chat": {"temperature": 0.1}}


def test_from_dict_rejects_unknown_fields() -> None:
    with pytest.raises(ConfigurationError, match="Unknown ClientConfig field") as exc:
        ClientConfig.from_dict({"timeout": 30})
    assert exc.value.hint is not None
    assert "timeout_s" in exc.value.hint


def test_invalid_retry_policy_maps_to_configuration_error() -> None:
    with pytest.raises(ConfigurationError, match="Invalid retry policy"):
        ClientConfig.from_dict({"retry": {"max_attempts": 0}})


def test_client_config_validates_ranges() -> None:
    with pytest.raises(ConfigurationError, match="timeout_s"):
        ClientConfig(timeout_s=0)
    with pytest.raises(ConfigurationError, match="connection_pool_size"):
        ClientConfig(connection_pool_size=0)
