"""Sequential and parallel item processing.

``process_with_context`` threads an accumulator through items one at a time;
each step sees the result of the previous one. ``process_parallel`` fans
independent items out over a bounded number of concurrent workers.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
import logging
from typing import Any, Generic, TypeVar

from agentwire.errors import StepError

T = TypeVar("T")
C = TypeVar("C")
R = TypeVar("R")

ProgressFunc = Callable[[int, int], None]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequentialConfig:
    """Options for :func:`process_with_context`."""

    expose_intermediate: bool = False


@dataclass(frozen=True)
class SequentialResult(Generic[C]):
    """Final accumulator plus, optionally, every accumulator along the way.

    ``intermediate`` is ``[initial, after_item_1, ..., after_item_n]`` when
    enabled and ``None`` otherwise.
    """

    final: C
    intermediate: list[C] | None = None


def _label(item: Any, index: int) -> str:
    number = getattr(item, "number", None)
    if isinstance(number, int):
        return f"page {number}"
    return f"item {index + 1}"


async def process_with_context(
    items: Sequence[T],
    initial: C,
    step: Callable[[T, C], Awaitable[C]],
    *,
    expose_intermediate: bool = False,
    progress: ProgressFunc | None = None,
    config: SequentialConfig | None = None,
) -> SequentialResult[C]:
    """Fold *items* through *step* in order, starting from *initial*.

    A failing step stops processing and raises :class:`StepError` chained
    to the cause; later items are never touched.
    """
    if config is not None:
        expose_intermediate = config.expose_intermediate
    if not items:
        return SequentialResult(final=initial)

    total = len(items)
    intermediate: list[C] | None = [initial] if expose_intermediate else None
    current = initial
    for index, item in enumerate(items):
        # Cancellation checkpoint before each step.
        await asyncio.sleep(0)
        try:
            current = await step(item, current)
        except Exception as e:
            raise StepError(
                f"Failed on {_label(item, index)}: {e}", index=index, item=item
            ) from e
        if intermediate is not None:
            intermediate.append(current)
        log.debug("Processed %d/%d", index + 1, total)
        if progress is not None:
            progress(index + 1, total)

    return SequentialResult(final=current, intermediate=intermediate)


async def process_parallel(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    max_workers: int = 16,
    progress: ProgressFunc | None = None,
) -> list[R]:
    """Run *worker* over *items* with at most *max_workers* in flight.

    Results keep the input order. The first failure cancels the remaining
    work and is raised as :class:`StepError`.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")
    if not items:
        return []

    total = len(items)
    sem = asyncio.Semaphore(max_workers)
    done_count = 0

    async def run(index: int, item: T) -> R:
        nonlocal done_count
        async with sem:
            try:
                value = await worker(item)
            except Exception as e:
                raise StepError(
                    f"Failed on {_label(item, index)}: {e}", index=index, item=item
                ) from e
        done_count += 1
        if progress is not None:
            progress(done_count, total)
        return value

    tasks = [asyncio.create_task(run(i, item)) for i, item in enumerate(items)]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        failed = [t for t in tasks if t in done and not t.cancelled() and t.exception()]
        if failed:
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            error = min(failed, key=tasks.index).exception()
            assert error is not None
            raise error
    finally:
        for t in tasks:
            if not t.done():
                t.cancel()
    return [t.result() for t in tasks]
