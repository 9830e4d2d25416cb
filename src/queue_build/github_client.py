"""GitHub REST client wrapper.

Provides:
- strict host allowlist
- per-call bearer credentials (app assertion or installation token)
- safe error translation
"""

from __future__ import annotations

import httpx

from .config import LimitsConfig
from .errors import AuthError, ConfigError, NotFoundError, UpstreamError
from .http_client import JsonHttpClient, decode_json, error_hint

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


def github_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


class GitHubClient:
    """Minimal GitHub REST client."""

    def __init__(
        self,
        *,
        limits: LimitsConfig,
        api_base_url: str = GITHUB_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create a GitHub REST client.

        Args:
            limits: Timeouts/retry limits.
            api_base_url: Must be https://api.github.com (enforced).
            transport: Optional httpx transport for tests.
        """
        self._api_base_url = api_base_url.rstrip("/")
        if self._api_base_url != GITHUB_API_URL:
            raise ConfigError(message="Only https://api.github.com is allowed")
        self._http = JsonHttpClient(limits=limits, transport=transport)

    async def request_json(
        self,
        *,
        method: str,
        path: str,
        token: str,
        json_body: dict | None = None,
        params: dict[str, str] | None = None,
    ) -> object:
        """Make a request and return decoded JSON.

        Raises:
            AuthError: On 401/403.
            NotFoundError: On 404.
            UpstreamError: On any other failure.
        """
        resp = await self._http.send(
            method=method,
            url=f"{self._api_base_url}{path}",
            headers=github_headers(token),
            json_body=json_body,
            params=params,
        )

        if resp.status_code in (401, 403):
            raise AuthError(
                message="GitHub rejected the app credentials",
                hint="The GitHub App may be uninstalled, revoked, or missing required permissions",
                status_code=resp.status_code,
            )
        if resp.status_code == 404:
            raise NotFoundError(message="GitHub resource not found", hint=error_hint(resp), status_code=404)
        if resp.status_code >= 400:
            raise UpstreamError(message="GitHub request failed", hint=error_hint(resp), status_code=resp.status_code)

        return decode_json(resp, source="GitHub")
