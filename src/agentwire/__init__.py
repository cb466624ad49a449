"""agentwire: a uniform async client for chat-completion providers.

Public API:
    - Agent: chat, vision, tools and embeddings behind one handle
    - Client: protocol dispatch with unary retries and SSE streaming
    - chat(): one-shot convenience built from an AgentConfig
    - process_with_context(): sequential accumulator threading
    - AgentConfig / ClientConfig / ProviderConfig / ModelConfig
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from agentwire.agent import Agent
from agentwire.client import Client, expect
from agentwire.config import AgentConfig, ClientConfig, ModelConfig, ProviderConfig
from agentwire.errors import (
    AgentwireError,
    CancelledError,
    ConfigurationError,
    DecodeError,
    EncodeError,
    InvalidOptionError,
    ProviderError,
    ProviderUnreachableError,
    RateLimitError,
    RetryExhaustedError,
    StepError,
    StreamParseError,
    UnexpectedResponseTypeError,
    UnsupportedProtocolError,
    UnsupportedStreamingError,
)
from agentwire.options import Options
from agentwire.processing import (
    SequentialConfig,
    SequentialResult,
    process_parallel,
    process_with_context,
)
from agentwire.responses import (
    ChatResponse,
    EmbeddingsResponse,
    StreamingChunk,
    ToolsResponse,
)
from agentwire.retry import RetryPolicy
from agentwire.streaming import ChunkStream
from agentwire.types import Message, Protocol, ToolDefinition

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("agentwire")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("agentwire").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


async def chat(
    prompt: str,
    *,
    config: AgentConfig,
    options: Options | dict[str, Any] | None = None,
    timeout: float | None = None,
) -> ChatResponse:
    """Run a single chat turn with a short-lived agent.

    Example:
        config = AgentConfig(client=ClientConfig(provider=ProviderConfig(
            name="ollama", model=ModelConfig(name="llama3.1:8b"))))
        resp = await chat("Why is the sky blue?", config=config)
        print(resp.content())
    """
    agent = Agent.from_config(config)
    try:
        return await agent.chat(prompt, options, timeout=timeout)
    finally:
        try:
            await agent.client.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Cleanup should never mask the primary failure.
            logger.warning("Client cleanup failed: %s", exc)


__all__ = [
    "Agent",
    "AgentConfig",
    "AgentwireError",
    "CancelledError",
    "ChatResponse",
    "ChunkStream",
    "Client",
    "ClientConfig",
    "ConfigurationError",
    "DecodeError",
    "EmbeddingsResponse",
    "EncodeError",
    "InvalidOptionError",
    "Message",
    "ModelConfig",
    "Options",
    "Protocol",
    "ProviderConfig",
    "ProviderError",
    "ProviderUnreachableError",
    "RateLimitError",
    "RetryExhaustedError",
    "RetryPolicy",
    "SequentialConfig",
    "SequentialResult",
    "StepError",
    "StreamParseError",
    "StreamingChunk",
    "ToolDefinition",
    "ToolsResponse",
    "UnexpectedResponseTypeError",
    "UnsupportedProtocolError",
    "UnsupportedStreamingError",
    "chat",
    "expect",
    "process_parallel",
    "process_with_context",
]
