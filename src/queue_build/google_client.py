"""Google Cloud REST access.

Access tokens come from Application Default Credentials: the runtime service account
on Cloud Run/Cloud Functions/GCE, ``GOOGLE_APPLICATION_CREDENTIALS``, or gcloud user
credentials locally. A static token can be configured for short local runs.
"""

from __future__ import annotations

import asyncio

import google.auth
import google.auth.transport.requests
import httpx
from google.auth import exceptions as google_auth_exceptions
from google.auth.credentials import Credentials

from .config import LimitsConfig
from .errors import AuthError, ConfigError, NotFoundError, UpstreamError
from .http_client import JsonHttpClient, decode_json, error_hint

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class GoogleTokenProvider:
    """Hands out a valid OAuth access token, refreshing the credentials when they expire."""

    def __init__(
        self,
        *,
        static_token: str | None = None,
        credentials: Credentials | None = None,
        auth_request: google.auth.transport.Request | None = None,
    ) -> None:
        """Create a token provider.

        Args:
            static_token: Pre-minted access token; skips credential discovery entirely.
            credentials: Explicit credentials (tests); Application Default Credentials otherwise.
            auth_request: google-auth transport used for refreshes (tests).
        """
        self._static_token = static_token
        self._credentials = credentials
        self._auth_request = auth_request
        self._lock = asyncio.Lock()

    def _load_default_credentials(self) -> Credentials:
        try:
            credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
        except google_auth_exceptions.DefaultCredentialsError as exc:
            raise ConfigError(
                message="Google Application Default Credentials are not available",
                hint="Run on Google Cloud, set GOOGLE_APPLICATION_CREDENTIALS, or set GOOGLE_OAUTH_ACCESS_TOKEN",
            ) from exc
        return credentials

    async def get_token(self) -> str:
        """Get a valid access token (refreshing if needed).

        Raises:
            ConfigError: If no credentials can be discovered.
            AuthError: If the credentials cannot be refreshed.
            UpstreamError: If the token endpoint is unreachable.
        """
        if self._static_token:
            return self._static_token

        async with self._lock:
            if self._credentials is None:
                self._credentials = self._load_default_credentials()

            if not self._credentials.valid:
                request = self._auth_request or google.auth.transport.requests.Request()
                try:
                    # google-auth refreshes synchronously.
                    await asyncio.to_thread(self._credentials.refresh, request)
                except google_auth_exceptions.RefreshError as exc:
                    raise AuthError(message="Google credentials could not be refreshed") from exc
                except google_auth_exceptions.TransportError as exc:
                    raise UpstreamError(message="Failed to obtain Google access token") from exc

            token = self._credentials.token
            if not token:
                raise UpstreamError(message="Google credentials returned no access token")
            return token


class GoogleClient:
    """Minimal authenticated JSON client for Google REST APIs."""

    def __init__(
        self,
        *,
        token_provider: GoogleTokenProvider,
        limits: LimitsConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._http = JsonHttpClient(limits=limits, transport=transport)

    async def request_json(
        self,
        *,
        method: str,
        url: str,
        json_body: dict | None = None,
        params: dict[str, str] | None = None,
        retry: bool = True,
    ) -> object:
        """Make an authenticated request and return decoded JSON.

        Raises:
            AuthError: On 401/403.
            NotFoundError: On 404.
            UpstreamError: On any other failure.
        """
        token = await self._token_provider.get_token()
        resp = await self._http.send(
            method=method,
            url=url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            json_body=json_body,
            params=params,
            retry=retry,
        )

        if resp.status_code in (401, 403):
            raise AuthError(message="Google API rejected the service credentials", status_code=resp.status_code)
        if resp.status_code == 404:
            raise NotFoundError(message="Google API resource not found", hint=error_hint(resp), status_code=404)
        if resp.status_code >= 400:
            raise UpstreamError(message="Google API request failed", hint=error_hint(resp), status_code=resp.status_code)

        return decode_json(resp, source="Google API")
