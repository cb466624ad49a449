"""Agent facade: a stable identity, a client and an optional system prompt."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import os
import time
from typing import Any, TypeVar
import uuid

from agentwire.client import Client, expect
from agentwire.config import AgentConfig
from agentwire.errors import AgentwireError, EncodeError, with_context
from agentwire.options import Options, as_option_dict
from agentwire.responses import ChatResponse, EmbeddingsResponse, ToolsResponse
from agentwire.streaming import ChunkStream
from agentwire.types import (
    ChatRequest,
    EmbeddingsRequest,
    Message,
    ProtocolRequest,
    ToolDefinition,
    ToolsRequest,
    VisionRequest,
)

T = TypeVar("T")

log = logging.getLogger(__name__)

OptionsLike = Options | Mapping[str, Any] | None


def uuid7() -> uuid.UUID:
    """Return a time-ordered UUID (RFC 9562 version 7)."""
    ms = time.time_ns() // 1_000_000
    value = (ms & ((1 << 48) - 1)) << 80 | int.from_bytes(os.urandom(10), "big")
    value = (value & ~(0xF << 76)) | (0x7 << 76)
    value = (value & ~(0x3 << 62)) | (0x2 << 62)
    return uuid.UUID(int=value)


def _tool(tool: ToolDefinition | Mapping[str, Any]) -> ToolDefinition:
    if isinstance(tool, ToolDefinition):
        return tool
    name = tool.get("name")
    if not isinstance(name, str) or not name:
        raise EncodeError(
            "Tool definition is missing a name",
            hint='Each tool mapping needs a non-empty "name" string.',
        )
    return ToolDefinition(
        name=name,
        description=tool.get("description", ""),
        parameters=dict(tool.get("parameters") or {"type": "object", "properties": {}}),
    )


class Agent:
    """High-level handle over a :class:`Client`.

    Every call builds ``[system?, user(prompt)]``, copies the caller's
    options (they are never mutated), injects the model name and dispatches.
    Failures are re-raised as the same error class carrying ``agent_id`` and
    ``agent_name``.

    Example:
        agent = Agent.from_config(AgentConfig(system_prompt="You are concise."))
        resp = await agent.chat("Hi", {"temperature": 0.2})
        print(resp.content())
    """

    def __init__(
        self,
        client: Client,
        *,
        system_prompt: str | None = None,
        name: str | None = None,
    ) -> None:
        self.client = client
        self.system_prompt = system_prompt
        self.name = name
        self._id = str(uuid7())

    @classmethod
    def from_config(cls, config: AgentConfig) -> Agent:
        client = Client.from_config(config.client)
        return cls(client, system_prompt=config.system_prompt, name=config.name)

    def __repr__(self) -> str:
        return f"Agent(id={self._id!r}, name={self.name!r}, model={self.client.model.name!r})"

    @property
    def id(self) -> str:
        return self._id

    async def __aenter__(self) -> Agent:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.client.aclose()

    def _messages(self, prompt: str) -> tuple[Message, ...]:
        if self.system_prompt:
            return (Message.system(self.system_prompt), Message.user(prompt))
        return (Message.user(prompt),)

    def _options(self, options: OptionsLike, *, stream: bool = False) -> dict[str, Any]:
        opts = as_option_dict(options)
        opts["model"] = self.client.model.name
        if stream:
            opts["stream"] = True
        return opts

    async def _unary(self, request: ProtocolRequest, cls: type[T], timeout: float | None) -> T:
        try:
            resp = await self.client.execute(request, timeout=timeout)
            return expect(resp, cls)
        except AgentwireError as e:
            raise with_context(e, agent_id=self._id, agent_name=self.name)

    def _agent_context(self, exc: BaseException) -> BaseException:
        if isinstance(exc, AgentwireError):
            return with_context(exc, agent_id=self._id, agent_name=self.name)
        return exc

    async def _stream(self, request: ProtocolRequest, timeout: float | None) -> ChunkStream:
        try:
            stream = await self.client.execute_stream(request, timeout=timeout)
        except AgentwireError as e:
            raise with_context(e, agent_id=self._id, agent_name=self.name)
        stream.add_error_hook(self._agent_context)
        return stream

    async def chat(
        self, prompt: str, options: OptionsLike = None, *, timeout: float | None = None
    ) -> ChatResponse:
        request = ChatRequest(self._messages(prompt), self._options(options))
        return await self._unary(request, ChatResponse, timeout)

    async def chat_stream(
        self, prompt: str, options: OptionsLike = None, *, timeout: float | None = None
    ) -> ChunkStream:
        request = ChatRequest(self._messages(prompt), self._options(options, stream=True))
        return await self._stream(request, timeout)

    def _vision_request(
        self,
        prompt: str,
        images: Sequence[str],
        options: OptionsLike,
        image_options: Mapping[str, Any] | None,
        *,
        stream: bool,
    ) -> VisionRequest:
        opts = self._options(options, stream=stream)
        embedded = opts.pop("image_options", None)
        if image_options is None and isinstance(embedded, Mapping):
            image_options = embedded
        return VisionRequest(
            messages=self._messages(prompt),
            images=tuple(images),
            image_options=dict(image_options) if image_options else None,
            options=opts,
        )

    async def vision(
        self,
        prompt: str,
        images: Sequence[str],
        options: OptionsLike = None,
        *,
        image_options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatResponse:
        """Ask about one or more images (http(s) URLs or data URIs)."""
        request = self._vision_request(prompt, images, options, image_options, stream=False)
        log.debug("Agent %s vision call with %d image(s)", self._id, len(request.images))
        return await self._unary(request, ChatResponse, timeout)

    async def vision_stream(
        self,
        prompt: str,
        images: Sequence[str],
        options: OptionsLike = None,
        *,
        image_options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChunkStream:
        request = self._vision_request(prompt, images, options, image_options, stream=True)
        return await self._stream(request, timeout)

    async def tools(
        self,
        prompt: str,
        tools: Sequence[ToolDefinition | Mapping[str, Any]],
        options: OptionsLike = None,
        *,
        timeout: float | None = None,
    ) -> ToolsResponse:
        """Offer *tools* to the model; tool calls come back unexecuted."""
        request = ToolsRequest(
            self._messages(prompt), tuple(_tool(t) for t in tools), self._options(options)
        )
        return await self._unary(request, ToolsResponse, timeout)

    async def embed(
        self,
        input: str | Sequence[str],
        options: OptionsLike = None,
        *,
        timeout: float | None = None,
    ) -> EmbeddingsResponse:
        payload = input if isinstance(input, str) else tuple(input)
        request = EmbeddingsRequest(payload, self._options(options))
        return await self._unary(request, EmbeddingsResponse, timeout)

