"""Cache-or-resolve orchestration for delayed build dispatches."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .auth import GitHubAppAuth
from .metadata import MetadataCache
from .scheduler import DebouncedScheduler, ScheduleResult
from .workflows import WorkflowResolver

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class BuildTarget:
    """Everything needed to address one repository's dispatch workflow for this request."""

    workflow_id: str
    installation_id: str
    token: str = field(repr=False)
    cache_hit: bool


@dataclass(frozen=True, slots=True)
class QueueBuildOutcome:
    schedule: ScheduleResult
    cache_hit: bool


class QueueBuildService:
    """Resolves a repository's dispatch target and schedules a debounced dispatch."""

    def __init__(
        self,
        *,
        auth: GitHubAppAuth,
        workflows: WorkflowResolver,
        cache: MetadataCache,
        scheduler: DebouncedScheduler,
        delay_s: int = 300,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._auth = auth
        self._workflows = workflows
        self._cache = cache
        self._scheduler = scheduler
        self._delay = timedelta(seconds=delay_s)
        self._clock = clock or _utcnow

    async def resolve_target(self, owner: str, repo: str) -> BuildTarget:
        """Return workflow id + fresh installation token, resolving and caching on a miss.

        A cache hit only exchanges the cached installation id for a token.
        """
        cached = await self._cache.lookup(owner, repo)
        if cached is not None:
            logger.info("Metadata cache hit for %s/%s", owner, repo)
            token = await self._auth.create_installation_token(cached.installation_id)
            return BuildTarget(
                workflow_id=cached.workflow_id,
                installation_id=cached.installation_id,
                token=token,
                cache_hit=True,
            )

        logger.info("Metadata cache miss for %s/%s", owner, repo)
        assertion = self._auth.issuer.issue()
        installation_id = await self._auth.get_installation_id(owner, repo, assertion)
        token = await self._auth.create_installation_token(installation_id)
        workflow_id = await self._workflows.get_dispatch_workflow_id(owner, repo, token)

        await self._cache.store(owner, repo, workflow_id, installation_id)
        return BuildTarget(workflow_id=workflow_id, installation_id=installation_id, token=token, cache_hit=False)

    async def queue_build(self, owner: str, repo: str) -> QueueBuildOutcome:
        """Schedule the repository's dispatch workflow to run after the debounce delay."""
        target = await self.resolve_target(owner, repo)
        run_at = self._clock() + self._delay
        result = await self._scheduler.schedule(
            owner=owner,
            repo=repo,
            workflow_id=target.workflow_id,
            token=target.token,
            run_at=run_at,
        )
        return QueueBuildOutcome(schedule=result, cache_hit=target.cache_hit)
