"""Deadline helpers shared by the client, agent and stream layers."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from agentwire.errors import CancelledError


def deadline_after(timeout: float | None) -> float | None:
    """Translate a relative *timeout* in seconds into an event-loop deadline."""
    if timeout is None:
        return None
    if timeout < 0:
        raise ValueError(f"timeout must be >= 0, got {timeout}")
    return asyncio.get_running_loop().time() + timeout


@asynccontextmanager
async def deadline(when: float | None, what: str) -> AsyncIterator[None]:
    """Bound the enclosed block by the loop-time deadline *when*.

    Expiry surfaces as :class:`agentwire.errors.CancelledError`; cancelling the
    surrounding task still raises ``asyncio.CancelledError``.
    """
    if when is None:
        yield
        return
    try:
        async with asyncio.timeout_at(when):
            yield
    except TimeoutError as e:
        raise CancelledError(f"{what}: deadline expired", hint="Raise timeout=.") from e
