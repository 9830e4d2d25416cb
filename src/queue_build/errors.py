"""Safe error types and serialization helpers.

Errors returned to callers must be non-secret and stable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar


@dataclass(eq=False)
class SafeError(Exception):
    """An error safe to expose to callers.

    This must never include secrets (tokens, private key content, installation IDs).
    """

    message: str
    hint: str | None = None
    status_code: int | None = None

    code: ClassVar[str] = "Internal"
    http_status: ClassVar[int] = 500

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class AuthError(SafeError):
    """Shared secret mismatch, rejected app assertion, or revoked installation."""

    code = "Auth"
    http_status = 403


class NotFoundError(SafeError):
    """App not installed on the repository, or no dispatch workflow."""

    code = "NotFound"
    http_status = 404


class UserInputError(SafeError):
    """Malformed request body or an invalid owner/repo name."""

    code = "UserInput"
    http_status = 400


class SchedulingError(SafeError):
    """Cloud Tasks list/create failure."""

    code = "Scheduling"
    http_status = 502


class StorageError(SafeError):
    """Metadata cache read or write failure."""

    code = "Storage"
    http_status = 502


class UpstreamError(SafeError):
    """GitHub or Google returned a server error, or the network failed."""

    code = "Upstream"
    http_status = 502


class SigningError(SafeError):
    """App private key material could not be used for RS256 signing."""

    code = "Signing"
    http_status = 500


class ConfigError(SafeError):
    """Missing or invalid host configuration, including unavailable Google credentials."""

    code = "Config"
    http_status = 500


def safe_error_to_result(err: SafeError) -> dict[str, Any]:
    """Convert a SafeError into the standard error envelope."""
    return to_error_result(code=err.code, message=err.message, hint=err.hint)


def to_error_result(*, code: str, message: str, hint: str | None = None) -> dict[str, Any]:
    """Build a standard error envelope."""
    out: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if hint:
        out["hint"] = hint
    return out


def internal_error(message: str = "Internal error") -> dict[str, Any]:
    """Error for unexpected failures."""
    return to_error_result(code="Internal", message=message)
