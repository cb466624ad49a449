"""OpenAI-compatible capability records for chat, vision, tools and embeddings."""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from agentwire.errors import DecodeError, EncodeError, StreamParseError
from agentwire.providers.base import Capability
from agentwire.responses import (
    ChatResponse,
    EmbeddingsResponse,
    StreamingChunk,
    ToolsResponse,
)
from agentwire.types import (
    ChatRequest,
    EmbeddingsRequest,
    ImagePart,
    Message,
    Protocol,
    TextPart,
    ToolsRequest,
    VisionRequest,
)

M = TypeVar("M", bound=BaseModel)

# Facade-level keys that never reach the wire.
_LOCAL_OPTION_KEYS = frozenset({"image_options"})


def _body(model_name: str, options: dict[str, Any], **fields: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"model": model_name, **fields}
    for key, value in options.items():
        if key in _LOCAL_OPTION_KEYS or value is None:
            continue
        body[key] = value
    return body


def _decode(raw: bytes, model: type[M], *, what: str) -> M:
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise DecodeError(f"{what} body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"{what} body must be a JSON object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise DecodeError(f"{what} body has an unexpected shape: {e}") from e


def _decode_chunk(raw: bytes) -> StreamingChunk:
    try:
        return _decode(raw, StreamingChunk, what="Stream chunk")
    except DecodeError as e:
        preview = raw[:200].decode("utf-8", errors="replace")
        raise StreamParseError(f"{e.args[0]} (payload: {preview!r})") from e


def build_chat(request: ChatRequest, model_name: str) -> dict[str, Any]:
    if not request.messages:
        raise EncodeError("Chat request has no messages", protocol="chat")
    return _body(
        model_name, request.options, messages=[m.to_wire() for m in request.messages]
    )


def vision_messages(request: VisionRequest) -> list[Message]:
    """Return the conversation with images attached to the final user turn.

    The last message must be a plain-text user message; it becomes one text
    part followed by one image part per image, in order. Earlier messages
    are passed through untouched.
    """
    if not request.messages:
        raise EncodeError("Vision request has no messages", protocol="vision")
    if not request.images:
        raise EncodeError(
            "Vision request has no images",
            hint="Pass at least one image URL or data URI.",
            protocol="vision",
        )
    last = request.messages[-1]
    if last.role != "user" or not isinstance(last.content, str):
        raise EncodeError(
            "Vision request must end with a text user message",
            protocol="vision",
        )
    extra = dict(request.image_options or {})
    parts: list[TextPart | ImagePart] = [TextPart(last.content)]
    for image in request.images:
        if not isinstance(image, str) or not image:
            raise EncodeError(f"Invalid image reference: {image!r}", protocol="vision")
        parts.append(ImagePart(url=image, extra=extra))
    return [*request.messages[:-1], Message("user", tuple(parts))]


def build_vision(request: VisionRequest, model_name: str) -> dict[str, Any]:
    messages = vision_messages(request)
    return _body(model_name, request.options, messages=[m.to_wire() for m in messages])


def build_tools(request: ToolsRequest, model_name: str) -> dict[str, Any]:
    if not request.messages:
        raise EncodeError("Tools request has no messages", protocol="tools")
    if not request.tools:
        raise EncodeError(
            "Tools request has no tool definitions",
            hint="Use chat() when no tools are offered.",
            protocol="tools",
        )
    return _body(
        model_name,
        request.options,
        messages=[m.to_wire() for m in request.messages],
        tools=[t.to_wire() for t in request.tools],
    )


def build_embeddings(request: EmbeddingsRequest, model_name: str) -> dict[str, Any]:
    inputs = request.input
    if isinstance(inputs, str):
        if not inputs:
            raise EncodeError("Embeddings input is empty", protocol="embeddings")
        payload: str | list[str] = inputs
    else:
        if not inputs:
            raise EncodeError("Embeddings input is empty", protocol="embeddings")
        payload = list(inputs)
    return _body(model_name, request.options, input=payload)


def parse_chat(raw: bytes) -> ChatResponse:
    return _decode(raw, ChatResponse, what="Chat response")


def parse_tools(raw: bytes) -> ToolsResponse:
    return _decode(raw, ToolsResponse, what="Tools response")


def parse_embeddings(raw: bytes) -> EmbeddingsResponse:
    return _decode(raw, EmbeddingsResponse, what="Embeddings response")


def standard_capabilities() -> dict[Protocol, Capability]:
    """The capability set every OpenAI-compatible endpoint offers."""
    return {
        Protocol.CHAT: Capability(Protocol.CHAT, build_chat, parse_chat, _decode_chunk),
        Protocol.VISION: Capability(
            Protocol.VISION, build_vision, parse_chat, _decode_chunk
        ),
        Protocol.TOOLS: Capability(Protocol.TOOLS, build_tools, parse_tools, _decode_chunk),
        Protocol.EMBEDDINGS: Capability(
            Protocol.EMBEDDINGS, build_embeddings, parse_embeddings
        ),
    }
