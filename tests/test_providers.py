"""Provider contract tests: wire shapes, auth, endpoints and the registry."""

from __future__ import annotations

import httpx
import pytest

from agentwire.config import ModelConfig, ProviderConfig
from agentwire.errors import (
    ConfigurationError,
    DecodeError,
    EncodeError,
    ProviderError,
    ProviderUnreachableError,
    RateLimitError,
    StreamParseError,
    UnsupportedProtocolError,
)
from agentwire.models import Model
from agentwire.providers import (
    AzureProvider,
    BaseProvider,
    OllamaProvider,
    OpenAIProvider,
    create,
    list_providers,
    register,
    standard_capabilities,
)
from agentwire.providers._errors import (
    decode_error_body,
    parse_retry_after,
    provider_error_from_response,
    wrap_transport_error,
)
from agentwire.providers.capabilities import vision_messages
from agentwire.types import (
    ChatRequest,
    EmbeddingsRequest,
    Message,
    Protocol,
    ToolDefinition,
    ToolsRequest,
    VisionRequest,
)

pytestmark = pytest.mark.contract

CAPS = standard_capabilities()


def _model(fmt: str = "openai-standard") -> Model:
    return Model.from_format("gpt-4o-mini", fmt)


# =============================================================================
# Capabilities
# =============================================================================


def test_chat_body_carries_model_messages_and_options() -> None:
    request = ChatRequest(
        messages=(Message.system("You are concise."), Message.user("Hi")),
        options={"temperature": 0.2, "seed": None},
    )

    body = CAPS[Protocol.CHAT].build_request(request, "m1")

    assert body == {
        "model": "m1",
        "messages": [
            {"role": "system", "content": "You are concise."},
            {"role": "user", "content": "Hi"},
        ],
        "temperature": 0.2,
    }


def test_chat_without_messages_is_an_encode_error() -> None:
    with pytest.raises(EncodeError):
        CAPS[Protocol.CHAT].build_request(ChatRequest(messages=()), "m1")


def test_vision_attaches_one_part_per_image_after_the_text() -> None:
    request = VisionRequest(
        messages=(Message.system("Describe."), Message.user("What differs?")),
        images=("https://a/1.png", "data:image/png;base64,AAAA"),
        image_options={"detail": "low"},
        options={"image_options": {"detail": "low"}, "max_tokens": 100},
    )

    body = CAPS[Protocol.VISION].build_request(request, "m1")

    assert body["messages"][0] == {"role": "system", "content": "Describe."}
    parts = body["messages"][-1]["content"]
    assert len(parts) == 3
    assert parts[0] == {"type": "text", "text": "What differs?"}
    assert parts[1] == {
        "type": "image_url",
        "image_url": {"url": "https://a/1.png", "detail": "low"},
    }
    assert parts[2]["image_url"]["url"].startswith("data:image/png")
    assert "image_options" not in body
    assert body["max_tokens"] == 100


@pytest.mark.parametrize(
    "request_",
    [
        VisionRequest(messages=(), images=("https://a/1.png",)),
        VisionRequest(messages=(Message.user("x"),), images=()),
        VisionRequest(messages=(Message.system("x"),), images=("https://a/1.png",)),
        VisionRequest(messages=(Message.user("x"),), images=("",)),
    ],
)
def test_vision_rejects_malformed_requests(request_: VisionRequest) -> None:
    with pytest.raises(EncodeError):
        vision_messages(request_)


def test_tools_body_includes_function_definitions() -> None:
    add = ToolDefinition(
        name="add",
        description="Add two integers",
        parameters={
            "type": "object",
            "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
        },
    )
    request = ToolsRequest(messages=(Message.user("add 2 and 3"),), tools=(add,))

    body = CAPS[Protocol.TOOLS].build_request(request, "m1")

    assert body["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "add",
                "description": "Add two integers",
                "parameters": add.parameters,
            },
        }
    ]


def test_tools_without_definitions_is_an_encode_error() -> None:
    with pytest.raises(EncodeError, match="no tool definitions"):
        CAPS[Protocol.TOOLS].build_request(
            ToolsRequest(messages=(Message.user("x"),), tools=()), "m1"
        )


@pytest.mark.parametrize(("value", "expected"), [("e1", "e1"), (("a", "b"), ["a", "b"])])
def test_embeddings_body_input(value: str | tuple[str, ...], expected: object) -> None:
    body = CAPS[Protocol.EMBEDDINGS].build_request(EmbeddingsRequest(input=value), "emb")
    assert body == {"model": "emb", "input": expected}


@pytest.mark.parametrize("value", ["", ()])
def test_embeddings_rejects_empty_input(value: str | tuple[str, ...]) -> None:
    with pytest.raises(EncodeError, match="empty"):
        CAPS[Protocol.EMBEDDINGS].build_request(EmbeddingsRequest(input=value), "emb")


def test_embeddings_capability_cannot_stream() -> None:
    assert not CAPS[Protocol.EMBEDDINGS].supports_streaming
    assert all(CAPS[p].supports_streaming for p in (Protocol.CHAT, Protocol.VISION, Protocol.TOOLS))


def test_parse_tools_exposes_calls() -> None:
    raw = (
        b'{"choices":[{"index":0,"finish_reason":"tool_calls","message":'
        b'{"role":"assistant","tool_calls":[{"id":"c1","type":"function",'
        b'"function":{"name":"add","arguments":"{\\"a\\":2,\\"b\\":3}"}}]}}]}'
    )

    response = CAPS[Protocol.TOOLS].parse_response(raw)

    (call,) = response.tool_calls()
    assert call.function.name == "add"
    assert call.parsed_arguments() == {"a": 2, "b": 3}


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b'{"choices": "nope"}'])
def test_parse_failures_are_decode_errors(raw: bytes) -> None:
    with pytest.raises(DecodeError):
        CAPS[Protocol.CHAT].parse_response(raw)


def test_chunk_parse_failure_is_stream_parse_error() -> None:
    parse_chunk = CAPS[Protocol.CHAT].parse_chunk
    assert parse_chunk is not None
    with pytest.raises(StreamParseError, match="payload"):
        parse_chunk(b"{broken")


# =============================================================================
# Providers
# =============================================================================


def test_openai_provider_sends_bearer_token() -> None:
    provider = OpenAIProvider(model=_model(), api_key="sk-test")

    prepared = provider.build(ChatRequest(messages=(Message.user("Hi"),)))

    assert prepared.method == "POST"
    assert prepared.url == "https://api.openai.com/v1/chat/completions"
    assert prepared.headers["Authorization"] == "Bearer sk-test"
    assert prepared.headers["Content-Type"] == "application/json"
    assert "Accept" not in prepared.headers
    assert prepared.json()["model"] == "gpt-4o-mini"


def test_streaming_requests_ask_for_event_stream() -> None:
    provider = OpenAIProvider(model=_model(), api_key="sk-test")
    prepared = provider.build(
        ChatRequest(messages=(Message.user("Hi"),), options={"stream": True}), stream=True
    )
    assert prepared.headers["Accept"] == "text/event-stream"
    assert prepared.json()["stream"] is True


def test_unserializable_body_is_an_encode_error() -> None:
    provider = OpenAIProvider(model=_model(), api_key="sk-test")
    request = ChatRequest(messages=(Message.user("Hi"),), options={"seed": object()})
    with pytest.raises(EncodeError, match="not JSON-serializable"):
        provider.build(request)


def test_provider_refuses_protocols_the_model_lacks() -> None:
    provider = OpenAIProvider(model=_model("openai-chat"), api_key="sk-test")
    assert provider.supports(Protocol.CHAT)
    assert not provider.supports(Protocol.VISION)
    with pytest.raises(UnsupportedProtocolError) as exc:
        provider.capability(Protocol.VISION)
    assert exc.value.provider == "openai"


def test_openai_from_config_requires_api_key() -> None:
    cfg = ProviderConfig(name="openai", base_url="https://api.openai.com/v1")
    with pytest.raises(ConfigurationError, match="api_key required") as exc:
        OpenAIProvider.from_config(cfg)
    assert "OPENAI_API_KEY" in (exc.value.hint or "")


@pytest.mark.parametrize(
    "base_url",
    ["http://localhost:11434", "http://localhost:11434/", "http://localhost:11434/v1"],
)
def test_ollama_normalizes_v1_suffix(base_url: str) -> None:
    provider = OllamaProvider(model=_model(), base_url=base_url)
    assert provider.endpoint(Protocol.CHAT) == "http://localhost:11434/v1/chat/completions"
    assert provider.endpoint(Protocol.EMBEDDINGS) == "http://localhost:11434/v1/embeddings"


@pytest.mark.parametrize(
    ("auth_type", "header", "expected"),
    [
        (None, None, {}),
        ("bearer", None, {"Authorization": "Bearer tok"}),
        ("api_key", None, {"X-API-Key": "tok"}),
        ("api_key", "X-Custom", {"X-Custom": "tok"}),
    ],
)
def test_ollama_auth_headers(auth_type: str | None, header: str | None, expected: dict) -> None:
    provider = OllamaProvider(
        model=_model(), auth_type=auth_type, token="tok", auth_header=header or "X-API-Key"
    )
    assert provider.auth_headers() == expected


def test_ollama_rejects_unknown_auth_type() -> None:
    with pytest.raises(ConfigurationError, match="auth_type"):
        OllamaProvider(model=_model(), auth_type="basic", token="tok")


def _azure(**overrides: str) -> AzureProvider:
    kwargs = {
        "model": _model(),
        "base_url": "https://acct.openai.azure.com/openai/",
        "deployment": "gpt4o",
        "auth_type": "api_key",
        "token": "azure-secret",
        "api_version": "2024-06-01",
        **overrides,
    }
    return AzureProvider(**kwargs)  # type: ignore[arg-type]


def test_azure_endpoint_is_deployment_scoped() -> None:
    provider = _azure()
    assert provider.endpoint(Protocol.CHAT) == (
        "https://acct.openai.azure.com/openai/deployments/gpt4o/chat/completions"
        "?api-version=2024-06-01"
    )
    assert provider.endpoint(Protocol.EMBEDDINGS).endswith(
        "/deployments/gpt4o/embeddings?api-version=2024-06-01"
    )


def test_azure_auth_header_styles() -> None:
    assert _azure().auth_headers() == {"api-key": "azure-secret"}
    assert _azure(auth_type="bearer").auth_headers() == {"Authorization": "Bearer azure-secret"}


@pytest.mark.parametrize("missing", ["deployment", "auth_type", "token", "api_version"])
def test_azure_requires_all_settings(missing: str) -> None:
    with pytest.raises(ConfigurationError, match=missing):
        _azure(**{missing: ""})


# =============================================================================
# Registry
# =============================================================================


def test_registry_knows_builtin_providers() -> None:
    assert {"openai", "ollama", "azure"} <= set(list_providers())


def test_registry_creates_ollama_from_config() -> None:
    cfg = ProviderConfig(
        name="ollama",
        base_url="http://gpu-box:11434",
        model=ModelConfig(name="llava:13b"),
        options={"auth_type": "bearer", "token": "t"},
    )

    provider = create(cfg)

    assert isinstance(provider, OllamaProvider)
    assert provider.model.name == "llava:13b"
    assert provider.auth_headers() == {"Authorization": "Bearer t"}


def test_registry_creates_azure_from_config() -> None:
    cfg = ProviderConfig(
        name="azure",
        base_url="https://acct.openai.azure.com/openai",
        api_key="k",
        options={"deployment": "d", "auth_type": "api_key", "api_version": "2024-06-01"},
    )
    provider = create(cfg)
    assert isinstance(provider, AzureProvider)
    assert provider.auth_headers() == {"api-key": "k"}


def test_registry_unknown_provider_lists_known_ones() -> None:
    with pytest.raises(ConfigurationError, match="Unknown provider") as exc:
        create(ProviderConfig(name="bedrock"))
    assert "openai" in (exc.value.hint or "")


def test_registry_accepts_custom_factories() -> None:
    def factory(cfg: ProviderConfig) -> BaseProvider:
        return BaseProvider(base_url=cfg.base_url, model=Model.from_config(cfg.model))

    register("test-custom", factory)

    provider = create(ProviderConfig(name="test-custom", base_url="http://x"))
    assert type(provider) is BaseProvider
    assert provider.endpoint(Protocol.CHAT) == "http://x/chat/completions"


# =============================================================================
# Error mapping
# =============================================================================


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("3", 3.0), ("0.5", 0.5), ("-1", None), ("soon", None), ("", None)],
)
def test_parse_retry_after(raw: str, expected: float | None) -> None:
    assert parse_retry_after(httpx.Headers({"Retry-After": raw})) == expected


def test_decode_error_body_prefers_json() -> None:
    assert decode_error_body(b'{"error": "x"}') == {"error": "x"}
    assert decode_error_body(b"plain text") == "plain text"
    assert decode_error_body(b"") is None


def test_rate_limit_reply_maps_to_rate_limit_error() -> None:
    err = provider_error_from_response(
        status_code=429,
        headers=httpx.Headers({"Retry-After": "2"}),
        body=b'{"error": {"message": "Too many requests"}}',
        provider="openai",
    )
    assert isinstance(err, RateLimitError)
    assert err.retryable is True
    assert err.retry_after_s == 2.0
    assert "Too many requests" in str(err)


def test_auth_failure_hints_at_env_var() -> None:
    err = provider_error_from_response(
        status_code=401, headers=None, body=b"unauthorized", provider="azure"
    )
    assert type(err) is ProviderError
    assert err.retryable is False
    assert "AZURE_OPENAI_API_KEY" in (err.hint or "")


def test_transport_errors_map_to_unreachable() -> None:
    timeout = wrap_transport_error(httpx.ReadTimeout("slow"), provider="ollama")
    refused = wrap_transport_error(httpx.ConnectError("refused"), provider="ollama")
    assert isinstance(timeout, ProviderUnreachableError)
    assert "timed out" in str(timeout)
    assert "unreachable" in str(refused)
    assert refused.retryable is True
