"""Process runtime: the object graph built once from configuration."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import httpx

from .audit import AuditLogger
from .auth import CredentialIssuer, GitHubAppAuth
from .config import AppConfig, load_config_from_env
from .github_client import GitHubClient
from .google_client import GoogleClient, GoogleTokenProvider
from .metadata import FirestoreMetadataCache, InMemoryMetadataCache, MetadataCache
from .scheduler import DebouncedScheduler
from .service import QueueBuildService
from .tasks_client import CloudTasksClient
from .workflows import WorkflowResolver


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-process dependencies shared across requests."""

    config: AppConfig
    audit: AuditLogger
    cache: MetadataCache
    service: QueueBuildService


_RUNTIME: Runtime | None = None


def build_runtime(
    config: AppConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Runtime:
    """Wire every component from an explicit configuration.

    Args:
        config: Validated configuration.
        transport: Optional httpx transport shared by all outbound clients (tests).
        clock: Optional UTC clock used to compute dispatch run times (tests).
    """
    audit = AuditLogger(
        sink_path=config.audit_log_path,
        max_bytes=config.audit_max_bytes,
        max_backups=config.audit_max_backups,
    )

    github = GitHubClient(limits=config.limits, transport=transport)
    issuer = CredentialIssuer(app_id=config.app_id, private_key_pem=config.private_key_pem)
    auth = GitHubAppAuth(issuer=issuer, github=github)
    workflows = WorkflowResolver(github=github, marker=config.dispatch.workflow_marker)

    google = GoogleClient(
        token_provider=GoogleTokenProvider(static_token=config.google_access_token),
        limits=config.limits,
        transport=transport,
    )

    cache: MetadataCache
    if config.metadata_backend == "memory":
        cache = InMemoryMetadataCache()
    else:
        cache = FirestoreMetadataCache(
            google=google,
            project_id=config.queue.project_id,
            collection=config.metadata_collection,
        )

    scheduler = DebouncedScheduler(
        tasks=CloudTasksClient(google=google, queue=config.queue),
        ref=config.dispatch.ref,
    )
    service = QueueBuildService(
        auth=auth,
        workflows=workflows,
        cache=cache,
        scheduler=scheduler,
        delay_s=config.dispatch.delay_s,
        clock=clock,
    )
    return Runtime(config=config, audit=audit, cache=cache, service=service)


def initialize_runtime_from_env() -> Runtime:
    """Initialize and cache runtime from environment.

    Called at server startup (fail-fast), and can also be used lazily.
    """
    global _RUNTIME  # pylint: disable=global-statement
    if _RUNTIME is not None:
        return _RUNTIME

    _RUNTIME = build_runtime(load_config_from_env())
    return _RUNTIME
