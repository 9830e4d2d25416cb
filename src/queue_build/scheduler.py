"""Debounced scheduling of delayed workflow dispatches.

At most one pending dispatch task per repository is intended to survive: scheduling a
new dispatch first removes every queued task addressing the same repository.

Known limitation: list/delete/create is not transactional against the queue. Two
concurrent requests for the same repository can both list before either creates, which
leaves two tasks queued. Closing that gap needs a distributed lock or a queue-side
deduplication key.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from .github_client import GITHUB_API_URL, GITHUB_API_VERSION
from .tasks_client import CloudTasksClient

logger = logging.getLogger(__name__)


def dispatch_url(owner: str, repo: str, workflow_id: str) -> str:
    return f"{GITHUB_API_URL}/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches"


def repo_url_fragment(owner: str, repo: str) -> str:
    # Compared lower-cased. The trailing slash keeps "acme/widgets" from matching "acme/widgets-legacy".
    return f"/repos/{owner}/{repo}/".lower()


def to_rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class DispatchTask:
    """A delayed POST to the workflow dispatch endpoint."""

    schedule_time: datetime
    url: str
    body: bytes
    headers: dict[str, str]

    def to_cloud_task(self) -> dict:
        """Render the Cloud Tasks resource; the queue decodes the base64 body on delivery."""
        return {
            "scheduleTime": to_rfc3339(self.schedule_time),
            "httpRequest": {
                "httpMethod": "POST",
                "url": self.url,
                "headers": dict(self.headers),
                "body": base64.b64encode(self.body).decode("ascii"),
            },
        }


def build_dispatch_task(
    *,
    owner: str,
    repo: str,
    workflow_id: str,
    token: str,
    run_at: datetime,
    ref: str = "main",
) -> DispatchTask:
    body = json.dumps({"ref": ref, "inputs": {}}, separators=(",", ":")).encode("utf-8")
    return DispatchTask(
        schedule_time=run_at,
        url=dispatch_url(owner, repo, workflow_id),
        body=body,
        headers={
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {token}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "Content-Type": "application/json",
        },
    )


@dataclass(frozen=True, slots=True)
class DeleteTally:
    """Outcome of a best-effort batch of task deletions."""

    deleted: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.deleted + self.failed


@dataclass(frozen=True, slots=True)
class ScheduleResult:
    task_name: str | None
    schedule_time: datetime
    superseded: DeleteTally


class DebouncedScheduler:
    """Cancel-and-replace scheduler for repository dispatch tasks."""

    def __init__(self, *, tasks: CloudTasksClient, ref: str = "main") -> None:
        self._tasks = tasks
        self._ref = ref

    async def find_pending(self, owner: str, repo: str) -> list[dict]:
        """Return queued tasks whose target URL addresses owner/repo."""
        fragment = repo_url_fragment(owner, repo)
        queued = await self._tasks.list_tasks()
        return [t for t in queued if fragment in str((t.get("httpRequest") or {}).get("url", "")).lower()]

    async def cancel(self, pending: list[dict]) -> DeleteTally:
        """Delete tasks concurrently; failures are logged one by one and never raised."""
        names = [t["name"] for t in pending if isinstance(t.get("name"), str)]
        unnamed = len(pending) - len(names)
        if unnamed:
            logger.info("Cannot delete %s queued tasks without a name", unnamed)

        outcomes = await asyncio.gather(
            *(self._tasks.delete_task(name) for name in names),
            return_exceptions=True,
        )

        failed = unnamed
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                failed += 1
                logger.info("Error deleting superseded task %s: %s", name, outcome)
        return DeleteTally(deleted=len(pending) - failed, failed=failed)

    async def schedule(
        self,
        *,
        owner: str,
        repo: str,
        workflow_id: str,
        token: str,
        run_at: datetime,
    ) -> ScheduleResult:
        """Replace any pending dispatch for owner/repo with one that fires at run_at.

        Raises:
            SchedulingError: If the queue cannot be listed or the new task cannot be created.
        """
        pending = await self.find_pending(owner, repo)
        tally = DeleteTally()
        if pending:
            logger.info("Task debounced for %s/%s (%s pending)", owner, repo, len(pending))
            tally = await self.cancel(pending)
            if tally.failed:
                logger.warning(
                    "Debounce for %s/%s left %s of %s superseded tasks in place",
                    owner,
                    repo,
                    tally.failed,
                    tally.attempted,
                )

        task = build_dispatch_task(
            owner=owner,
            repo=repo,
            workflow_id=workflow_id,
            token=token,
            run_at=run_at,
            ref=self._ref,
        )
        created = await self._tasks.create_task(task.to_cloud_task())
        task_name = created.get("name")
        logger.info("Task added for %s/%s: %s", owner, repo, task_name)
        return ScheduleResult(
            task_name=task_name if isinstance(task_name, str) else None,
            schedule_time=run_at,
            superseded=tally,
        )
