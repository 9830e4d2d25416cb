"""Configuration loading for queue-build.

Configuration is supplied by the host environment, never by callers. The private key,
the shared API key and any static Google token are secrets and must never be emitted
to responses, logs, or audit reasons.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ConfigError

_METADATA_BACKENDS = frozenset({"firestore", "memory"})


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Outbound network limits."""

    total_timeout_s: float = 60.0
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 30.0

    max_attempts: int = 3
    max_backoff_s: float = 5.0


@dataclass(frozen=True, slots=True)
class QueueConfig:
    """Cloud Tasks queue coordinates."""

    project_id: str
    location: str
    queue_name: str

    @property
    def path(self) -> str:
        return f"projects/{self.project_id}/locations/{self.location}/queues/{self.queue_name}"


@dataclass(frozen=True, slots=True)
class DispatchConfig:
    """Shape of the delayed workflow dispatch."""

    workflow_marker: str = "dispatch"
    ref: str = "main"
    delay_s: int = 300


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Process-wide configuration, built once at startup."""

    app_id: int
    private_key_pem: str = field(repr=False)
    api_key: str = field(repr=False)

    queue: QueueConfig
    dispatch: DispatchConfig
    metadata_backend: str
    metadata_collection: str

    audit_log_path: Path | None
    audit_max_bytes: int
    audit_max_backups: int
    limits: LimitsConfig

    google_access_token: str | None = field(default=None, repr=False)


def _require(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigError(message=f"Missing required configuration ({name})")
    return value


def _parse_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(message=f"{name} must be an integer") from exc
    if value <= 0:
        raise ConfigError(message=f"{name} must be positive")
    return value


def _load_private_key() -> str:
    inline = os.getenv("GITHUB_APP_PRIVATE_KEY")
    if inline and inline.strip():
        # Hosts that store the PEM in a single-line variable escape the newlines.
        return inline.replace("\\n", "\n")

    path_raw = os.getenv("GITHUB_APP_PRIVATE_KEY_PATH")
    if not path_raw:
        raise ConfigError(
            message="Missing required configuration (GITHUB_APP_PRIVATE_KEY or GITHUB_APP_PRIVATE_KEY_PATH)",
        )

    key_path = Path(path_raw)
    if not key_path.is_absolute():
        raise ConfigError(message="GITHUB_APP_PRIVATE_KEY_PATH must be an absolute path")

    # Never echo the path.
    if not key_path.is_file():
        raise ConfigError(message="GitHub App private key file is missing or not a file")
    try:
        return key_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(message="GitHub App private key file is unreadable") from exc


def load_config_from_env() -> AppConfig:
    """Load and validate configuration from environment variables.

    Raises:
        ConfigError: If configuration is missing/invalid.
    """
    app_id_raw = _require("GITHUB_APP_ID")
    try:
        app_id = int(app_id_raw)
    except ValueError as exc:
        raise ConfigError(message="GITHUB_APP_ID must be an integer") from exc

    private_key_pem = _load_private_key()
    api_key = _require("QUEUE_BUILD_API_KEY")

    queue = QueueConfig(
        project_id=_require("GCP_PROJECT_ID"),
        location=os.getenv("QUEUE_BUILD_LOCATION", "").strip() or "us-central1",
        queue_name=_require("QUEUE_BUILD_QUEUE_NAME"),
    )

    dispatch = DispatchConfig(
        workflow_marker=os.getenv("QUEUE_BUILD_WORKFLOW_MARKER", "").strip() or "dispatch",
        ref=os.getenv("QUEUE_BUILD_DISPATCH_REF", "").strip() or "main",
        delay_s=_parse_positive_int("QUEUE_BUILD_DISPATCH_DELAY_S", 300),
    )

    backend = (os.getenv("QUEUE_BUILD_METADATA_BACKEND", "").strip() or "firestore").lower()
    if backend not in _METADATA_BACKENDS:
        raise ConfigError(
            message="QUEUE_BUILD_METADATA_BACKEND must be one of: " + ", ".join(sorted(_METADATA_BACKENDS)),
        )
    collection = os.getenv("QUEUE_BUILD_METADATA_COLLECTION", "").strip() or "ids"

    audit_path_raw = os.getenv("QUEUE_BUILD_AUDIT_LOG_PATH")
    audit_path: Path | None = None
    if audit_path_raw:
        p = Path(audit_path_raw)
        if not p.is_absolute():
            raise ConfigError(message="QUEUE_BUILD_AUDIT_LOG_PATH must be an absolute path when set")
        audit_path = p

    google_token = os.getenv("GOOGLE_OAUTH_ACCESS_TOKEN", "").strip() or None

    return AppConfig(
        app_id=app_id,
        private_key_pem=private_key_pem,
        api_key=api_key,
        queue=queue,
        dispatch=dispatch,
        metadata_backend=backend,
        metadata_collection=collection,
        audit_log_path=audit_path,
        audit_max_bytes=5 * 1024 * 1024,
        audit_max_backups=2,
        limits=LimitsConfig(),
        google_access_token=google_token,
    )
