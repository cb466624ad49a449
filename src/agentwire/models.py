"""Model registry: named models with per-protocol option defaults and schemas."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import threading
from typing import TYPE_CHECKING, Any

from agentwire.errors import ConfigurationError, InvalidOptionError, UnsupportedProtocolError
from agentwire.options import (
    CHAT_SCHEMA,
    EMBEDDINGS_SCHEMA,
    REASONING_CHAT_SCHEMA,
    TOOLS_SCHEMA,
    VISION_SCHEMA,
    OptionSchema,
    merge_options,
)
from agentwire.types import Protocol

if TYPE_CHECKING:
    from agentwire.config import ModelConfig


@dataclass(frozen=True)
class ModelFormat:
    """A reusable bundle of protocol schemas and default options."""

    name: str
    schemas: Mapping[Protocol, OptionSchema]
    defaults: Mapping[Protocol, Mapping[str, Any]] = field(default_factory=dict)

    def supports(self, protocol: Protocol) -> bool:
        return protocol in self.schemas


@dataclass(frozen=True)
class Model:
    """A configured model at runtime.

    ``defaults`` are merged under caller options on every request; ``schemas``
    decide which protocols the model serves and how options are validated.
    """

    name: str
    schemas: Mapping[Protocol, OptionSchema]
    defaults: Mapping[Protocol, Mapping[str, Any]] = field(default_factory=dict)

    def supports(self, protocol: Protocol) -> bool:
        return protocol in self.schemas

    def protocols(self) -> tuple[Protocol, ...]:
        return tuple(p for p in Protocol if p in self.schemas)

    def schema_for(self, protocol: Protocol) -> OptionSchema:
        try:
            return self.schemas[protocol]
        except KeyError:
            raise UnsupportedProtocolError(
                f"Protocol {protocol} not supported by model {self.name}",
                hint=f"Supported: {', '.join(str(p) for p in self.protocols()) or 'none'}",
                protocol=str(protocol),
                model=self.name,
            ) from None

    def options_for(self, protocol: Protocol) -> dict[str, Any]:
        """Return a copy of the model's default options for *protocol*."""
        return dict(self.defaults.get(protocol, {}))

    def merge_request_options(
        self, protocol: Protocol, options: Mapping[str, Any] | None
    ) -> dict[str, Any]:
        """Merge defaults with request options; request options win."""
        return merge_options(self.defaults.get(protocol), options)

    def with_defaults(self, protocol: Protocol, options: Mapping[str, Any]) -> Model:
        """Return a new model whose *protocol* defaults include *options*."""
        schema = self.schema_for(protocol)
        updated = merge_options(self.defaults.get(protocol), options)
        try:
            schema.validate(updated)
        except InvalidOptionError as e:
            e.protocol = str(protocol)
            e.model = self.name
            raise
        defaults = {**self.defaults, protocol: updated}
        return Model(name=self.name, schemas=self.schemas, defaults=defaults)

    @classmethod
    def from_format(cls, name: str, fmt: ModelFormat | str) -> Model:
        resolved = get_format(fmt) if isinstance(fmt, str) else fmt
        return cls(
            name=name,
            schemas=dict(resolved.schemas),
            defaults={p: dict(v) for p, v in resolved.defaults.items()},
        )

    @classmethod
    def from_config(cls, cfg: ModelConfig) -> Model:
        """Build a model from configuration, overlaying configured defaults."""
        model = cls.from_format(cfg.name, cfg.format)
        for proto_name, options in cfg.options.items():
            try:
                protocol = Protocol.parse(proto_name)
            except UnsupportedProtocolError as e:
                raise ConfigurationError(
                    f"Invalid protocol in model configuration: {proto_name!r}",
                    hint=e.hint,
                ) from e
            if not model.supports(protocol):
                raise ConfigurationError(
                    f"Model format {cfg.format!r} does not support protocol {protocol}",
                    hint="Pick a format that includes the protocol, e.g. 'openai-standard'.",
                )
            try:
                model = model.with_defaults(protocol, options)
            except InvalidOptionError as e:
                raise ConfigurationError(
                    f"Invalid default options for {protocol}: {e.args[0]}",
                    hint=e.hint,
                ) from e
        return model


_STANDARD_DEFAULTS: dict[Protocol, dict[str, Any]] = {
    Protocol.CHAT: {"max_tokens": 4096, "temperature": 0.7},
    Protocol.VISION: {"max_tokens": 4096, "temperature": 0.7},
    Protocol.TOOLS: {"max_tokens": 4096, "temperature": 0.7, "tool_choice": "auto"},
    Protocol.EMBEDDINGS: {"encoding_format": "float"},
}

_registry_lock = threading.Lock()
_formats: dict[str, ModelFormat] = {}


def register_format(fmt: ModelFormat) -> None:
    """Register (or replace) a model format by name."""
    with _registry_lock:
        _formats[fmt.name] = fmt


def get_format(name: str) -> ModelFormat:
    with _registry_lock:
        fmt = _formats.get(name)
    if fmt is None:
        raise ConfigurationError(
            f"Model format {name!r} not registered",
            hint=f"Registered formats: {', '.join(list_formats())}",
        )
    return fmt


def list_formats() -> list[str]:
    with _registry_lock:
        return sorted(_formats)


register_format(
    ModelFormat(
        name="openai-standard",
        schemas={
            Protocol.CHAT: CHAT_SCHEMA,
            Protocol.VISION: VISION_SCHEMA,
            Protocol.TOOLS: TOOLS_SCHEMA,
            Protocol.EMBEDDINGS: EMBEDDINGS_SCHEMA,
        },
        defaults=_STANDARD_DEFAULTS,
    )
)
register_format(
    ModelFormat(
        name="openai-chat",
        schemas={Protocol.CHAT: CHAT_SCHEMA},
        defaults={Protocol.CHAT: _STANDARD_DEFAULTS[Protocol.CHAT]},
    )
)
register_format(
    ModelFormat(
        name="openai-reasoning",
        schemas={Protocol.CHAT: REASONING_CHAT_SCHEMA},
        defaults={Protocol.CHAT: {"max_completion_tokens": 4096, "reasoning_effort": "medium"}},
    )
)
register_format(
    ModelFormat(
        name="openai-embeddings",
        schemas={Protocol.EMBEDDINGS: EMBEDDINGS_SCHEMA},
        defaults={Protocol.EMBEDDINGS: _STANDARD_DEFAULTS[Protocol.EMBEDDINGS]},
    )
)
