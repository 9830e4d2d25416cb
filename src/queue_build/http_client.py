"""Shared outbound JSON-over-HTTP plumbing.

Provides:
- bounded retries with backoff on 429/5xx and transport failures
- finite timeouts
- no-redirect behavior
"""

from __future__ import annotations

import asyncio
import json

import httpx

from .config import LimitsConfig
from .errors import UpstreamError


class JsonHttpClient:
    """Retrying request helper shared by the GitHub and Google clients."""

    def __init__(self, *, limits: LimitsConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._limits = limits
        self._transport = transport

    def _timeout(self) -> httpx.Timeout:
        return httpx.Timeout(
            timeout=self._limits.total_timeout_s,
            connect=self._limits.connect_timeout_s,
            read=self._limits.read_timeout_s,
        )

    def _compute_backoff_s(self, attempt_index: int) -> float:
        # attempt_index: 1 for first retry, 2 for second retry...
        base = min(self._limits.max_backoff_s, 0.5 * (2 ** (attempt_index - 1)))
        jitter = min(0.05, 0.01 * attempt_index)
        return min(self._limits.max_backoff_s, base + jitter)

    def _is_retryable(self, status_code: int | None, exc: Exception | None) -> bool:
        if exc is not None:
            return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))
        if status_code is None:
            return False
        if status_code == 429:
            return True
        return 500 <= status_code <= 599

    async def send(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        json_body: dict | None = None,
        params: dict[str, str] | None = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Send a request, retrying transient failures.

        Returns the final response whatever its status; callers translate error statuses.
        Pass retry=False for non-idempotent calls: a lost or failed reply may still mean
        the server applied the request, so it is sent exactly once.

        Raises:
            UpstreamError: If the network failed on every attempt.
        """
        last_exc: Exception | None = None
        max_attempts = self._limits.max_attempts if retry else min(self._limits.max_attempts, 1)

        async with httpx.AsyncClient(
            follow_redirects=False,
            timeout=self._timeout(),
            transport=self._transport,
        ) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    resp = await client.request(method, url, headers=headers, json=json_body, params=params)
                except (httpx.TimeoutException, httpx.TransportError) as exc:
                    last_exc = exc
                    if attempt < max_attempts:
                        await asyncio.sleep(self._compute_backoff_s(attempt))
                        continue
                    break

                if attempt < max_attempts and self._is_retryable(resp.status_code, None):
                    await asyncio.sleep(self._compute_backoff_s(attempt))
                    continue
                return resp

        raise UpstreamError(message="Network request failed") from last_exc


def error_hint(resp: httpx.Response) -> str | None:
    """Extract a short, non-secret hint from an error payload, if any.

    GitHub uses {"message": ...}; Google APIs use {"error": {"message": ...}}.
    """
    try:
        payload = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    message = payload.get("message")
    if isinstance(message, str):
        return message
    error = payload.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


def decode_json(resp: httpx.Response, *, source: str) -> object:
    """Decode a JSON body or raise UpstreamError."""
    try:
        return resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise UpstreamError(message=f"{source} returned invalid JSON", status_code=resp.status_code) from exc
