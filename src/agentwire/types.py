"""Request-side domain types: protocols, messages, tools, protocol requests."""

from __future__ import annotations

from dataclasses import dataclass, field
import enum
from typing import Any, Literal, TypeAlias

from agentwire.errors import UnsupportedProtocolError

Role = Literal["system", "user", "assistant", "tool"]
ROLES: frozenset[str] = frozenset({"system", "user", "assistant", "tool"})


class Protocol(str, enum.Enum):
    """Kinds of model interaction a provider can serve."""

    CHAT = "chat"
    VISION = "vision"
    TOOLS = "tools"
    EMBEDDINGS = "embeddings"

    @property
    def supports_streaming(self) -> bool:
        """Whether responses for this protocol can be streamed."""
        return self is not Protocol.EMBEDDINGS

    @classmethod
    def parse(cls, value: str | Protocol) -> Protocol:
        """Resolve a protocol name, case-sensitively."""
        if isinstance(value, Protocol):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedProtocolError(
                f"Unknown protocol: {value!r}",
                hint=f"Valid protocols: {', '.join(cls.values())}",
            ) from None

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(p.value for p in cls)

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TextPart:
    """A text segment of structured message content."""

    text: str

    def to_wire(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    """An image reference (http(s) URL or data URI) in message content."""

    url: str
    detail: str | None = None
    #: Other provider-recognized decorations, forwarded verbatim.
    extra: dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        image: dict[str, Any] = {"url": self.url}
        if self.detail is not None:
            image["detail"] = self.detail
        image.update(self.extra)
        return {"type": "image_url", "image_url": image}


ContentPart: TypeAlias = TextPart | ImagePart
Content: TypeAlias = str | tuple[ContentPart, ...]


@dataclass(frozen=True)
class Message:
    """A single conversation turn."""

    role: Role
    content: Content = ""

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))

    def to_wire(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [p.to_wire() for p in self.content]}

    @classmethod
    def system(cls, content: str) -> Message:
        return cls("system", content)

    @classmethod
    def user(cls, content: Content) -> Message:
        return cls("user", content)


@dataclass(frozen=True)
class ToolDefinition:
    """A provider-agnostic function definition; ``parameters`` is JSON Schema."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _is_streaming(options: Any) -> bool:
    return bool(options.get("stream", False)) if options else False


@dataclass(frozen=True)
class ChatRequest:
    messages: tuple[Message, ...]
    options: dict[str, Any] = field(default_factory=dict)

    protocol = Protocol.CHAT

    @property
    def stream(self) -> bool:
        return _is_streaming(self.options)


@dataclass(frozen=True)
class VisionRequest:
    messages: tuple[Message, ...]
    images: tuple[str, ...]
    image_options: dict[str, Any] | None = None
    options: dict[str, Any] = field(default_factory=dict)

    protocol = Protocol.VISION

    @property
    def stream(self) -> bool:
        return _is_streaming(self.options)


@dataclass(frozen=True)
class ToolsRequest:
    messages: tuple[Message, ...]
    tools: tuple[ToolDefinition, ...]
    options: dict[str, Any] = field(default_factory=dict)

    protocol = Protocol.TOOLS

    @property
    def stream(self) -> bool:
        return _is_streaming(self.options)


@dataclass(frozen=True)
class EmbeddingsRequest:
    input: str | tuple[str, ...]
    options: dict[str, Any] = field(default_factory=dict)

    protocol = Protocol.EMBEDDINGS

    @property
    def stream(self) -> bool:
        return _is_streaming(self.options)


ProtocolRequest: TypeAlias = ChatRequest | VisionRequest | ToolsRequest | EmbeddingsRequest
