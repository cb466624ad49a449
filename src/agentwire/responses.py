"""Response-side wire models: typed views over OpenAI-compatible bodies.

Models are permissive on input (unknown provider fields are kept) so that a
decode followed by ``model_dump`` reproduces what the provider sent.
"""

from __future__ import annotations

import json
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

from agentwire.errors import DecodeError


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="allow")


class TokenUsage(_WireModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ToolCallFunction(_WireModel):
    name: str = ""
    arguments: str = ""


class ToolCall(_WireModel):
    """A function call the model asked the caller to perform."""

    id: str = ""
    type: str = "function"
    function: ToolCallFunction = Field(default_factory=ToolCallFunction)

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the JSON-encoded arguments string."""
        if not self.function.arguments:
            return {}
        try:
            value = json.loads(self.function.arguments)
        except json.JSONDecodeError as e:
            raise DecodeError(
                f"Tool call {self.function.name!r} has invalid JSON arguments",
                hint="The model produced malformed arguments; retry or repair them.",
            ) from e
        if not isinstance(value, dict):
            raise DecodeError(
                f"Tool call {self.function.name!r} arguments are not a JSON object"
            )
        return value


class ResponseMessage(_WireModel):
    role: str = "assistant"
    content: str | list[Any] | None = None
    tool_calls: list[ToolCall] | None = None

    def text(self) -> str:
        """Return text content, flattening structured parts."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        pieces: list[str] = []
        for part in self.content:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                pieces.append(part["text"])
            elif isinstance(part, str):
                pieces.append(part)
        return "".join(pieces)


class Choice(_WireModel):
    index: int = 0
    message: ResponseMessage = Field(default_factory=ResponseMessage)
    finish_reason: str | None = None


class ChatResponse(_WireModel):
    """Non-streaming chat or vision completion."""

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[Choice] = Field(default_factory=list)
    usage: TokenUsage | None = None

    def content(self) -> str:
        """Text of the first choice, or "" when there are no choices."""
        if not self.choices:
            return ""
        return self.choices[0].message.text()

    def finish_reason(self) -> str | None:
        return self.choices[0].finish_reason if self.choices else None


class ToolsResponse(ChatResponse):
    """Completion that may carry tool-call intents per choice."""

    def tool_calls(self, index: int = 0) -> list[ToolCall]:
        for choice in self.choices:
            if choice.index == index:
                return list(choice.message.tool_calls or [])
        return []


class Embedding(_WireModel):
    index: int = 0
    embedding: list[float] = Field(default_factory=list)
    object: str | None = None


class EmbeddingsResponse(_WireModel):
    object: str | None = None
    data: list[Embedding] = Field(default_factory=list)
    model: str | None = None
    usage: TokenUsage | None = None

    def vectors(self) -> list[list[float]]:
        """Embedding vectors ordered by their index."""
        return [e.embedding for e in sorted(self.data, key=lambda e: e.index)]


class ToolCallDelta(_WireModel):
    index: int = 0
    id: str | None = None
    type: str | None = None
    function: dict[str, Any] | None = None


class ChunkDelta(_WireModel):
    role: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallDelta] | None = None


class ChunkChoice(_WireModel):
    index: int = 0
    delta: ChunkDelta = Field(default_factory=ChunkDelta)
    finish_reason: str | None = None


class StreamingChunk(_WireModel):
    """One incremental event of a streaming completion."""

    id: str | None = None
    object: str | None = None
    created: int | None = None
    model: str | None = None
    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: TokenUsage | None = None

    def content(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].delta.content or ""

    def is_final(self) -> bool:
        """True when every choice in this chunk has a finish reason."""
        return bool(self.choices) and all(
            c.finish_reason is not None for c in self.choices
        )


Response: TypeAlias = ChatResponse | ToolsResponse | EmbeddingsResponse
