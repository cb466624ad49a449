"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off clients and pages as coverage expands.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from agentwire.client import Client
from agentwire.mock import MockProvider, MockReply, MockTransport
from agentwire.retry import RetryPolicy

# Zero-delay policy so retry tests do not sleep.
FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay_s=0.0)


def make_client(
    *replies: MockReply | tuple[int, Any],
    model: str = "m1",
    retry: RetryPolicy = FAST_RETRY,
) -> tuple[Client, MockTransport]:
    """Client over a mock provider whose HTTP replies are scripted."""
    transport = MockTransport(replies)
    return Client(MockProvider(model), transport, retry=retry), transport


@dataclass
class FakePage:
    """Page double: renders to fixed bytes and counts renders."""

    number: int
    data: bytes = b"\x89PNG fake"
    renders: int = 0

    async def to_image(self) -> bytes:
        self.renders += 1
        return self.data


@dataclass
class RecordingStep:
    """Sequential step that appends the item and records every call.

    Fails with ``RuntimeError`` on ``fail_on`` when set.
    """

    fail_on: Any = None
    seen: list[Any] = field(default_factory=list)

    async def __call__(self, item: Any, acc: list[Any]) -> list[Any]:
        self.seen.append(item)
        await asyncio.sleep(0)
        if self.fail_on is not None and item == self.fail_on:
            raise RuntimeError(f"boom on {item}")
        return [*acc, item]
