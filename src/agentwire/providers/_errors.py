"""Shared provider-side error helpers.

Non-2xx replies and transport failures are mapped into agentwire errors with
retry metadata attached, so the retry policy stays deterministic.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from agentwire._http import is_retryable_status
from agentwire.errors import (
    AgentwireError,
    ProviderError,
    ProviderUnreachableError,
    RateLimitError,
)


def parse_retry_after(headers: Any) -> float | None:
    """Read a ``Retry-After`` header expressed in seconds."""
    if headers is None:
        return None
    try:
        raw = headers.get("Retry-After")
    except AttributeError:
        return None
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def decode_error_body(body: bytes) -> Any:
    """Decode an error body as JSON when possible, else as text."""
    if not body:
        return None
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _error_message(body: Any) -> str:
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            return err["message"]
        if isinstance(err, str):
            return err
        if isinstance(body.get("message"), str):
            return body["message"]
    if isinstance(body, str):
        return body.strip()[:500]
    return ""


def _auth_hint(provider: str, status_code: int) -> str | None:
    """Generate a hint for auth errors where naming the env var is useful."""
    if status_code not in {401, 403}:
        return None
    env_var = {
        "openai": "OPENAI_API_KEY",
        "azure": "AZURE_OPENAI_API_KEY",
        "ollama": "OLLAMA_API_KEY",
    }.get(provider, "the provider API key")
    return f"Check credentials/permissions (try setting {env_var} or ProviderConfig.api_key)."


def provider_error_from_response(
    *,
    status_code: int,
    headers: Any,
    body: bytes,
    provider: str,
) -> ProviderError:
    """Map a non-2xx reply into :class:`ProviderError` (or ``RateLimitError``)."""
    decoded = decode_error_body(body)
    detail = _error_message(decoded)
    err_cls: type[ProviderError] = RateLimitError if status_code == 429 else ProviderError
    msg = f"{provider} request failed (status={status_code})"
    return err_cls(
        f"{msg}: {detail}" if detail else msg,
        hint=_auth_hint(provider, status_code),
        status_code=status_code,
        body=decoded,
        retryable=is_retryable_status(status_code),
        retry_after_s=parse_retry_after(headers),
        provider=provider,
    )


def wrap_transport_error(exc: BaseException, *, provider: str) -> AgentwireError:
    """Map httpx transport exceptions into :class:`ProviderUnreachableError`."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc
    if isinstance(exc, AgentwireError):
        if exc.provider is None:
            exc.provider = provider
        return exc
    kind = "timed out" if isinstance(exc, httpx.TimeoutException) else "unreachable"
    cause = str(exc) or type(exc).__name__
    return ProviderUnreachableError(
        f"{provider} {kind}: {cause}",
        hint="Check base_url, network connectivity and that the server is running.",
        provider=provider,
    )
