"""Test doubles: a scripted HTTP transport, client, provider and agent.

``MockTransport`` drives the real transport/stream code over
``httpx.MockTransport``; ``MockClient`` skips HTTP entirely and replays
canned responses and chunk lists; ``MockAgent`` answers each agent method
from a fixed script.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
import json
from typing import Any, TypeVar

import httpx

from agentwire.agent import Agent
from agentwire.client import Client
from agentwire.config import ClientConfig
from agentwire.models import Model
from agentwire.providers.base import PreparedRequest
from agentwire.providers.openai import OpenAIProvider
from agentwire.responses import (
    ChatResponse,
    EmbeddingsResponse,
    Response,
    StreamingChunk,
    ToolsResponse,
)
from agentwire.retry import RetryPolicy
from agentwire.streaming import ChunkStream
from agentwire.transport import HTTPTransport, TransportResponse
from agentwire.types import ProtocolRequest, ToolDefinition

R = TypeVar("R")

MOCK_BASE_URL = "http://mock.local"


def sse_body(*chunks: Mapping[str, Any] | str, done: bool = True) -> bytes:
    """Frame JSON chunks as server-sent events, with a ``[DONE]`` trailer."""
    frames = [
        f"data: {c if isinstance(c, str) else json.dumps(c)}\n\n" for c in chunks
    ]
    if done:
        frames.append("data: [DONE]\n\n")
    return "".join(frames).encode("utf-8")


def chat_body(
    content: str, *, finish_reason: str = "stop", model: str = "mock-model"
) -> dict[str, Any]:
    return {
        "id": "chatcmpl-mock",
        "object": "chat.completion",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
    }


def delta_chunk(content: str, *, finish_reason: str | None = None) -> dict[str, Any]:
    return {
        "object": "chat.completion.chunk",
        "choices": [
            {"index": 0, "delta": {"content": content}, "finish_reason": finish_reason}
        ],
    }


class _ScriptedStream(httpx.AsyncByteStream):
    """Response body that yields scripted pieces and records its release."""

    def __init__(self, pieces: list[bytes], delay_s: float) -> None:
        self._pieces = pieces
        self._delay_s = delay_s
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for piece in self._pieces:
            if self._delay_s:
                await asyncio.sleep(self._delay_s)
            yield piece

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class MockReply:
    """One scripted HTTP reply; a list body is sent as separate pieces."""

    status: int = 200
    body: bytes | str | Mapping[str, Any] | list[bytes] = b""
    headers: dict[str, str] = field(default_factory=dict)
    delay_s: float = 0.0
    error: Exception | None = None

    def pieces(self) -> list[bytes]:
        if isinstance(self.body, list):
            return list(self.body)
        if isinstance(self.body, bytes):
            return [self.body]
        if isinstance(self.body, str):
            return [self.body.encode("utf-8")]
        return [json.dumps(self.body).encode("utf-8")]


class MockTransport(HTTPTransport):
    """An :class:`HTTPTransport` answering from a script instead of the network.

    Every :class:`PreparedRequest` is recorded in :attr:`requests`; every
    response body stream is kept in :attr:`streams` so tests can check that
    connections were released.
    """

    def __init__(
        self,
        replies: Iterable[MockReply | tuple[int, Any]] = (),
        *,
        config: ClientConfig | None = None,
    ) -> None:
        self._replies: deque[MockReply] = deque()
        for reply in replies:
            self.add(reply)
        self.requests: list[PreparedRequest] = []
        self.streams: list[_ScriptedStream] = []
        super().__init__(config, transport=httpx.MockTransport(self._handle))

    def add(self, reply: MockReply | tuple[int, Any]) -> None:
        if isinstance(reply, tuple):
            reply = MockReply(status=reply[0], body=reply[1])
        self._replies.append(reply)

    async def send(
        self,
        prepared: PreparedRequest,
        *,
        stream: bool = False,
        provider: str = "http",
    ) -> TransportResponse:
        self.requests.append(prepared)
        return await super().send(prepared, stream=stream, provider=provider)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        if not self._replies:
            return httpx.Response(500, json={"error": {"message": "no scripted reply left"}})
        reply = self._replies.popleft()
        if reply.error is not None:
            raise reply.error
        stream = _ScriptedStream(reply.pieces(), reply.delay_s)
        self.streams.append(stream)
        return httpx.Response(reply.status, headers=reply.headers, stream=stream)


class MockProvider(OpenAIProvider):
    """OpenAI-compatible provider pointed at ``http://mock.local``."""

    name = "mock"

    def __init__(
        self, model: Model | str = "mock-model", *, format: str = "openai-standard"
    ) -> None:
        resolved = model if isinstance(model, Model) else Model.from_format(model, format)
        super().__init__(model=resolved, api_key="mock-key", base_url=MOCK_BASE_URL)


class MockClient(Client):
    """A client that replays scripted results without any HTTP.

    ``responses`` are returned (or raised, when exceptions) by
    :meth:`execute` in order; ``streams`` are chunk lists replayed by
    :meth:`execute_stream`. Every request is recorded in :attr:`requests`.
    """

    def __init__(
        self,
        *,
        model: Model | str = "mock-model",
        responses: Iterable[Response | BaseException] = (),
        streams: Iterable[list[StreamingChunk] | BaseException] = (),
    ) -> None:
        super().__init__(MockProvider(model), MockTransport(), retry=RetryPolicy(max_attempts=1))
        self._responses: deque[Response | BaseException] = deque(responses)
        self._streams: deque[list[StreamingChunk] | BaseException] = deque(streams)
        self.requests: list[ProtocolRequest] = []

    def add_response(self, response: Response | BaseException) -> None:
        self._responses.append(response)

    def add_stream(self, chunks: list[StreamingChunk] | BaseException) -> None:
        self._streams.append(chunks)

    async def execute(self, request: ProtocolRequest, *, timeout: float | None = None) -> Response:
        self.requests.append(request)
        if not self._responses:
            return ChatResponse.model_validate(chat_body(""))
        result = self._responses.popleft()
        if isinstance(result, BaseException):
            raise result
        return result

    async def execute_stream(
        self, request: ProtocolRequest, *, timeout: float | None = None
    ) -> ChunkStream:
        self.requests.append(request)
        chunks = self._streams.popleft() if self._streams else []
        if isinstance(chunks, BaseException):
            raise chunks
        return ChunkStream.from_chunks(chunks)


class MockAgent(Agent):
    """An :class:`Agent` whose methods return predetermined results.

    Each ``*_response`` is returned as is, or raised when it is an exception;
    an unset one yields an empty response of the right variant. Both stream
    methods replay ``stream_chunks``, or raise ``stream_error`` when set.
    Prompts are recorded in :attr:`prompts`.
    """

    def __init__(
        self,
        *,
        agent_id: str = "mock-agent-id",
        name: str | None = None,
        client: Client | None = None,
        chat_response: ChatResponse | BaseException | None = None,
        vision_response: ChatResponse | BaseException | None = None,
        tools_response: ToolsResponse | BaseException | None = None,
        embeddings_response: EmbeddingsResponse | BaseException | None = None,
        stream_chunks: Sequence[StreamingChunk] = (),
        stream_error: BaseException | None = None,
    ) -> None:
        super().__init__(client or MockClient(), name=name)
        self._id = agent_id
        self.chat_response = chat_response
        self.vision_response = vision_response
        self.tools_response = tools_response
        self.embeddings_response = embeddings_response
        self.stream_chunks = list(stream_chunks)
        self.stream_error = stream_error
        self.prompts: list[str] = []

    @staticmethod
    def _answer(result: R | BaseException | None, cls: type[R]) -> R:
        if isinstance(result, BaseException):
            raise result
        return result if result is not None else cls()

    def _replay(self) -> ChunkStream:
        if self.stream_error is not None:
            raise self.stream_error
        return ChunkStream.from_chunks(list(self.stream_chunks))

    async def chat(
        self, prompt: str, options: Any = None, *, timeout: float | None = None
    ) -> ChatResponse:
        self.prompts.append(prompt)
        return self._answer(self.chat_response, ChatResponse)

    async def chat_stream(
        self, prompt: str, options: Any = None, *, timeout: float | None = None
    ) -> ChunkStream:
        self.prompts.append(prompt)
        return self._replay()

    async def vision(
        self,
        prompt: str,
        images: Sequence[str],
        options: Any = None,
        *,
        image_options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChatResponse:
        self.prompts.append(prompt)
        return self._answer(self.vision_response, ChatResponse)

    async def vision_stream(
        self,
        prompt: str,
        images: Sequence[str],
        options: Any = None,
        *,
        image_options: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> ChunkStream:
        self.prompts.append(prompt)
        return self._replay()

    async def tools(
        self,
        prompt: str,
        tools: Sequence[ToolDefinition | Mapping[str, Any]],
        options: Any = None,
        *,
        timeout: float | None = None,
    ) -> ToolsResponse:
        self.prompts.append(prompt)
        return self._answer(self.tools_response, ToolsResponse)

    async def embed(
        self,
        input: str | Sequence[str],
        options: Any = None,
        *,
        timeout: float | None = None,
    ) -> EmbeddingsResponse:
        self.prompts.append(input if isinstance(input, str) else "\n".join(input))
        return self._answer(self.embeddings_response, EmbeddingsResponse)
