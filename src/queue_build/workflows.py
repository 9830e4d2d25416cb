"""Dispatch-capable workflow lookup."""

from __future__ import annotations

import logging

from .errors import NotFoundError, UpstreamError
from .github_client import GitHubClient

logger = logging.getLogger(__name__)

_PAGE_SIZE = 100


class WorkflowResolver:
    """Finds the repository workflow whose name carries the dispatch marker."""

    def __init__(self, *, github: GitHubClient, marker: str = "dispatch") -> None:
        self._github = github
        self._marker = marker

    async def list_workflows(self, owner: str, repo: str, token: str) -> list[dict]:
        """Return every workflow defined in the repository, in listing order."""
        workflows: list[dict] = []
        page = 1
        while True:
            data = await self._github.request_json(
                method="GET",
                path=f"/repos/{owner}/{repo}/actions/workflows",
                token=token,
                params={"per_page": str(_PAGE_SIZE), "page": str(page)},
            )
            if not isinstance(data, dict) or not isinstance(data.get("workflows"), list):
                raise UpstreamError(message="Unexpected workflows response")

            batch = [w for w in data["workflows"] if isinstance(w, dict)]
            workflows.extend(batch)

            total = data.get("total_count")
            if len(batch) < _PAGE_SIZE or (isinstance(total, int) and len(workflows) >= total):
                return workflows
            page += 1

    async def get_dispatch_workflow_id(self, owner: str, repo: str, token: str) -> str:
        """Return the id of the first workflow whose name contains the marker.

        Raises:
            NotFoundError: If no workflow name contains the marker.
        """
        workflows = await self.list_workflows(owner, repo, token)
        matches = [w for w in workflows if self._marker in str(w.get("name", ""))]
        if not matches:
            raise NotFoundError(
                message="No dispatch workflow found in repository",
                hint=f"Add a workflow whose name contains '{self._marker}'",
            )
        if len(matches) > 1:
            logger.warning(
                "Repository %s/%s has %s workflows containing %r; using the first (%s)",
                owner,
                repo,
                len(matches),
                self._marker,
                matches[0].get("name"),
            )
        workflow_id = matches[0].get("id")
        if workflow_id is None:
            raise UpstreamError(message="Unexpected workflows response")
        return str(workflow_id)
