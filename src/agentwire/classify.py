"""Page-by-page document classification on top of the agent facade.

A running :class:`DocumentClassification` is threaded through every page of
a document: each page is rendered, sent to a vision model together with the
current state, and the model answers with the updated state.
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Sequence
import enum
import json
import logging
import re
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError

from agentwire.errors import DecodeError, EncodeError, StepError
from agentwire.processing import ProgressFunc, SequentialResult, process_with_context
from agentwire.retry import _NON_RETRYABLE_ATTR, RetryPolicy, is_retryable, retry_async

if TYPE_CHECKING:
    from agentwire.agent import Agent

log = logging.getLogger(__name__)

# Vision backends throttle hard on image-heavy traffic; back off slowly.
CLASSIFY_RETRY = RetryPolicy(
    max_attempts=3, initial_delay_s=13.0, backoff_multiplier=1.2, max_delay_s=50.0
)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.+?)\s*```", re.DOTALL)


class ImageFormat(str, enum.Enum):
    PNG = "png"
    JPEG = "jpeg"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"


@runtime_checkable
class Page(Protocol):
    """A renderable document page; rasterization lives outside agentwire."""

    number: int

    async def to_image(self) -> bytes: ...


class DocumentClassification(BaseModel):
    file: str = ""
    classification: str = ""
    confidence: str = ""
    markings_found: list[str] = Field(default_factory=list)
    classification_rationale: str = ""


def encode_image_data_uri(data: bytes, fmt: ImageFormat | str = ImageFormat.PNG) -> str:
    """Encode raw image bytes as a ``data:`` URI."""
    if not data:
        raise EncodeError("Image data is empty")
    try:
        resolved = ImageFormat(fmt)
    except ValueError:
        raise EncodeError(
            f"Unsupported image format: {fmt!r}",
            hint=f"Use one of: {', '.join(f.value for f in ImageFormat)}",
        ) from None
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{resolved.mime_type};base64,{encoded}"


def parse_classification(text: str) -> DocumentClassification:
    """Parse a model reply as raw JSON, or JSON inside a markdown code fence."""
    try:
        return DocumentClassification.model_validate_json(text)
    except ValidationError as direct:
        match = _FENCED_JSON.search(text)
        if match is None:
            raise DecodeError(
                f"Failed to parse classification response: {direct.errors()[0]['msg']}",
                hint="The model must answer with a JSON object.",
            ) from direct
        try:
            return DocumentClassification.model_validate_json(match.group(1).strip())
        except ValidationError as fenced:
            raise DecodeError(
                f"Failed to parse fenced classification response: {fenced.errors()[0]['msg']}"
            ) from fenced


def default_prompt(current: DocumentClassification) -> str:
    """Minimal prompt: current state plus the expected answer shape."""
    state = json.dumps(current.model_dump(), indent=2)
    lines = [f"Current document classification state:\n\n{state}\n"]
    if not current.classification:
        lines.append("This is the first page - initialize the classification.\n")
    lines.append(
        "Analyze this page image, update the classification state and return "
        "ONLY the updated state as a JSON object."
    )
    return "\n".join(lines)


def _retry_classification(exc: BaseException) -> bool:
    # Malformed or empty model answers are worth another attempt.
    if isinstance(exc, DecodeError) and not getattr(exc, _NON_RETRYABLE_ATTR, False):
        return True
    return is_retryable(exc)


async def classify_document(
    agent: Agent,
    name: str,
    pages: Sequence[Page],
    *,
    prompt_builder: Callable[[DocumentClassification], str] = default_prompt,
    retry: RetryPolicy = CLASSIFY_RETRY,
    image_format: ImageFormat = ImageFormat.PNG,
    expose_intermediate: bool = False,
    progress: ProgressFunc | None = None,
) -> SequentialResult[DocumentClassification]:
    """Classify one document by threading its state through every page."""

    async def step(page: Page, current: DocumentClassification) -> DocumentClassification:
        data = await page.to_image()
        uri = encode_image_data_uri(data, image_format)
        prompt = prompt_builder(current)

        async def attempt(n: int) -> DocumentClassification:
            if n > 1:
                log.info("Retry attempt %d for %s page %d", n - 1, name, page.number)
            resp = await agent.vision(prompt, [uri])
            content = resp.content()
            if not content.strip():
                raise DecodeError(f"Received empty classification for page {page.number}")
            return parse_classification(content)

        return await retry_async(attempt, policy=retry, should_retry=_retry_classification)

    initial = DocumentClassification(file=name)
    log.debug("Classifying %s (%d page(s))", name, len(pages))
    return await process_with_context(
        pages,
        initial,
        step,
        expose_intermediate=expose_intermediate,
        progress=progress,
    )


async def classify_documents(
    agent: Agent,
    documents: Sequence[tuple[str, Sequence[Page]]],
    *,
    prompt_builder: Callable[[DocumentClassification], str] = default_prompt,
    retry: RetryPolicy = CLASSIFY_RETRY,
    progress: ProgressFunc | None = None,
) -> list[DocumentClassification]:
    """Classify ``(name, pages)`` documents one after another."""
    results: list[DocumentClassification] = []
    for index, (name, pages) in enumerate(documents):
        log.info("Document %d/%d: %s", index + 1, len(documents), name)
        try:
            result = await classify_document(
                agent,
                name,
                pages,
                prompt_builder=prompt_builder,
                retry=retry,
                progress=progress,
            )
        except StepError as e:
            raise StepError(f"Failed to classify {name}: {e}", index=index, item=name) from e
        results.append(result.final)
    return results
