"""GitHub App authentication.

Implements App JWT signing, per-repository installation lookup and installation
token exchange. Secrets (private key content, tokens) must never be exposed;
installation IDs must not appear in responses or audit reasons.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

import jwt
from cryptography.exceptions import UnsupportedAlgorithm

from .errors import AuthError, NotFoundError, SigningError, UpstreamError
from .github_client import GitHubClient

logger = logging.getLogger(__name__)

ASSERTION_TTL_S = 60


@dataclass(frozen=True, slots=True)
class SignedAssertion:
    """Short-lived app identity proof. Never persisted."""

    token: str = field(repr=False)
    issued_at: int
    expires_at: int
    issuer: str


class CredentialIssuer:
    """Builds RS256 app assertions from the configured private key."""

    def __init__(self, *, app_id: int, private_key_pem: str, clock: Callable[[], float] = time.time) -> None:
        self._issuer = str(app_id)
        self._private_key_pem = private_key_pem
        self._clock = clock

    def issue(self) -> SignedAssertion:
        """Sign a fresh assertion valid for exactly ASSERTION_TTL_S seconds.

        Raises:
            SigningError: If the key material is malformed.
        """
        now = int(self._clock())
        payload = {
            "iat": now,
            "exp": now + ASSERTION_TTL_S,
            "iss": self._issuer,
        }
        try:
            token = jwt.encode(payload, self._private_key_pem, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError, UnsupportedAlgorithm) as exc:
            raise SigningError(message="GitHub App private key could not be used for signing") from exc
        return SignedAssertion(token=token, issued_at=now, expires_at=now + ASSERTION_TTL_S, issuer=self._issuer)


class GitHubAppAuth:
    """Resolves installations and exchanges them for installation tokens."""

    def __init__(self, *, issuer: CredentialIssuer, github: GitHubClient) -> None:
        self._issuer = issuer
        self._github = github

    @property
    def issuer(self) -> CredentialIssuer:
        return self._issuer

    async def get_installation_id(self, owner: str, repo: str, assertion: SignedAssertion) -> str:
        """Return the id of the app installation bound to owner/repo.

        Raises:
            NotFoundError: If the app is not installed on the repository.
            AuthError: If the assertion is rejected.
        """
        try:
            data = await self._github.request_json(
                method="GET",
                path=f"/repos/{owner}/{repo}/installation",
                token=assertion.token,
            )
        except NotFoundError as exc:
            raise NotFoundError(
                message="GitHub App is not installed on this repository",
                hint=f"Install the app on {owner}/{repo}",
                status_code=exc.status_code,
            ) from exc

        installation_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(installation_id, int):
            raise UpstreamError(message="Unexpected installation response")
        return str(installation_id)

    async def create_installation_token(self, installation_id: str) -> str:
        """Exchange an installation id for a fresh installation access token.

        Tokens are requested per call and never cached.

        Raises:
            AuthError: If GitHub rejects the exchange (e.g. revoked installation).
        """
        assertion = self._issuer.issue()
        try:
            data = await self._github.request_json(
                method="POST",
                path=f"/app/installations/{installation_id}/access_tokens",
                token=assertion.token,
                json_body={},
            )
        except NotFoundError as exc:
            # GitHub answers 404 for installations that were removed since they were cached.
            raise AuthError(message="GitHub App installation is no longer available", status_code=exc.status_code) from exc

        token = data.get("token") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthError(message="GitHub token response missing required fields")
        logger.debug("Obtained installation access token")
        return token
