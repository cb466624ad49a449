"""Request options: a typed option bag plus per-protocol validation schemas.

Callers may pass plain mappings or :class:`Options`; both are normalized to a
fresh ``dict`` before dispatch. Validation happens once, at the dispatch
boundary, against the model's :class:`OptionSchema` for the protocol.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Literal

from agentwire.errors import InvalidOptionError

OptionKind = Literal["number", "integer", "string", "bool", "mapping", "stop", "any"]


@dataclass(frozen=True)
class Options:
    """Recognized request options with a free-form overflow mapping.

    Unset (``None``) fields are omitted from the wire body.
    """

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    stop: str | list[str] | None = None
    seed: int | None = None
    stream: bool | None = None
    response_format: dict[str, Any] | None = None
    tool_choice: str | dict[str, Any] | None = None
    reasoning_effort: str | None = None
    dimensions: int | None = None
    encoding_format: str | None = None
    #: Forwarded verbatim; rejected by closed schemas.
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Reject obviously malformed values early."""
        if self.max_tokens is not None and (
            not isinstance(self.max_tokens, int)
            or isinstance(self.max_tokens, bool)
            or self.max_tokens <= 0
        ):
            raise InvalidOptionError(
                "max_tokens must be a positive integer",
                option="max_tokens",
                hint="Pass max_tokens=1024 or similar.",
            )
        if self.stream is not None and not isinstance(self.stream, bool):
            raise InvalidOptionError("stream must be a bool", option="stream")
        if not isinstance(self.extra, Mapping):
            raise InvalidOptionError("extra must be a mapping", option="extra")
        overlap = _known_keys() & set(self.extra)
        if overlap:
            raise InvalidOptionError(
                f"extra duplicates recognized option(s): {', '.join(sorted(overlap))}",
                hint="Set recognized options through their named fields.",
            )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> Options:
        """Split a plain mapping into recognized keys and overflow."""
        if not mapping:
            return cls()
        known = _known_keys()
        kwargs = {k: v for k, v in mapping.items() if k in known}
        extra = {k: v for k, v in mapping.items() if k not in known}
        return cls(**kwargs, extra=extra)

    def to_mapping(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extra":
                continue
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = value
        out.update(self.extra)
        return out


def _known_keys() -> frozenset[str]:
    return frozenset(f.name for f in fields(Options) if f.name != "extra")


def as_option_dict(options: Options | Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a fresh, caller-independent ``dict`` of options."""
    if options is None:
        return {}
    if isinstance(options, Options):
        return options.to_mapping()
    if not isinstance(options, Mapping):
        raise InvalidOptionError(
            f"options must be a mapping or Options, got {type(options).__name__}"
        )
    return dict(options)


def merge_options(
    defaults: Mapping[str, Any] | None, overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Merge two option mappings into a new dict; *overrides* win."""
    merged = dict(defaults or {})
    merged.update(overrides or {})
    return merged


@dataclass(frozen=True)
class OptionSpec:
    """Validation rule for a single option key."""

    name: str
    kind: OptionKind = "any"
    minimum: float | None = None
    maximum: float | None = None
    choices: tuple[Any, ...] | None = None
    required: bool = False

    def check(self, value: Any) -> None:
        if not _matches_kind(self.kind, value, self.choices):
            raise InvalidOptionError(
                f"Option {self.name!r} must be of kind {self.kind}, got {type(value).__name__}",
                option=self.name,
            )
        scalar = isinstance(value, (str, int, float)) and not isinstance(value, bool)
        if self.choices is not None and scalar:
            if value not in self.choices:
                allowed = ", ".join(repr(c) for c in self.choices)
                raise InvalidOptionError(
                    f"Option {self.name!r} must be one of {allowed}, got {value!r}",
                    option=self.name,
                )
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if self.minimum is not None and value < self.minimum:
                raise InvalidOptionError(
                    f"Option {self.name!r} must be >= {self.minimum}, got {value}",
                    option=self.name,
                )
            if self.maximum is not None and value > self.maximum:
                raise InvalidOptionError(
                    f"Option {self.name!r} must be <= {self.maximum}, got {value}",
                    option=self.name,
                )


def _matches_kind(kind: OptionKind, value: Any, choices: tuple[Any, ...] | None) -> bool:
    if kind == "any":
        return True
    if kind == "bool":
        return isinstance(value, bool)
    if kind == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if kind == "string":
        return isinstance(value, str)
    if kind == "mapping":
        # tool_choice style options accept either a choice string or a mapping.
        return isinstance(value, Mapping) or (choices is not None and isinstance(value, str))
    if kind == "stop":
        return isinstance(value, str) or (
            isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)
        )
    return False


@dataclass(frozen=True)
class OptionSchema:
    """Per-protocol option rules.

    A *closed* schema rejects keys it does not declare; an open schema
    forwards them untouched.
    """

    specs: tuple[OptionSpec, ...] = ()
    closed: bool = False

    def names(self) -> frozenset[str]:
        return frozenset(s.name for s in self.specs)

    def validate(self, options: Mapping[str, Any]) -> None:
        by_name = {s.name: s for s in self.specs}
        for key, value in options.items():
            spec = by_name.get(key)
            if spec is None:
                if self.closed:
                    raise InvalidOptionError(
                        f"Unsupported option: {key}",
                        option=key,
                        hint=f"Supported options: {', '.join(sorted(by_name))}",
                    )
                continue
            if value is None:
                continue
            spec.check(value)
        for spec in self.specs:
            if spec.required and options.get(spec.name) is None:
                raise InvalidOptionError(
                    f"Required option missing: {spec.name}", option=spec.name
                )

    def extend(self, *specs: OptionSpec, closed: bool | None = None) -> OptionSchema:
        """Return a copy with *specs* added (replacing same-named rules)."""
        names = {s.name for s in specs}
        kept = tuple(s for s in self.specs if s.name not in names)
        return OptionSchema(
            specs=kept + tuple(specs),
            closed=self.closed if closed is None else closed,
        )


# Keys every protocol tolerates: the facade injects them.
_MODEL = OptionSpec("model", "string")
_STREAM = OptionSpec("stream", "bool")

_SAMPLING: tuple[OptionSpec, ...] = (
    OptionSpec("temperature", "number", minimum=0, maximum=2),
    OptionSpec("top_p", "number", minimum=0, maximum=1),
    OptionSpec("max_tokens", "integer", minimum=1),
    OptionSpec("presence_penalty", "number", minimum=-2, maximum=2),
    OptionSpec("frequency_penalty", "number", minimum=-2, maximum=2),
    OptionSpec("stop", "stop"),
    OptionSpec("seed", "integer"),
    OptionSpec("response_format", "mapping"),
)

CHAT_SCHEMA = OptionSchema(specs=(_MODEL, _STREAM, *_SAMPLING))
VISION_SCHEMA = CHAT_SCHEMA
TOOLS_SCHEMA = CHAT_SCHEMA.extend(
    OptionSpec("tool_choice", "mapping", choices=("auto", "none", "required")),
    OptionSpec("parallel_tool_calls", "bool"),
)
EMBEDDINGS_SCHEMA = OptionSchema(
    specs=(
        _MODEL,
        OptionSpec("dimensions", "integer", minimum=1),
        OptionSpec("encoding_format", "string", choices=("float", "base64")),
        OptionSpec("user", "string"),
    )
)
REASONING_CHAT_SCHEMA = OptionSchema(
    specs=(
        _MODEL,
        _STREAM,
        OptionSpec("max_completion_tokens", "integer", minimum=1),
        OptionSpec("reasoning_effort", "string", choices=("low", "medium", "high")),
        OptionSpec("response_format", "mapping"),
        OptionSpec("seed", "integer"),
        OptionSpec("stop", "stop"),
    ),
    closed=True,
)
