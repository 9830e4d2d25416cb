"""Cloud Tasks REST (v2) client limited to list/create/delete of HTTP tasks."""

from __future__ import annotations

from .config import QueueConfig
from .errors import SafeError, SchedulingError, UpstreamError
from .google_client import GoogleClient

CLOUD_TASKS_API_URL = "https://cloudtasks.googleapis.com/v2"

_PAGE_SIZE = 1000


class CloudTasksClient:
    """Operates on a single configured queue."""

    def __init__(self, *, google: GoogleClient, queue: QueueConfig, api_base_url: str = CLOUD_TASKS_API_URL) -> None:
        self._google = google
        self._queue = queue
        self._api_base_url = api_base_url.rstrip("/")

    @property
    def queue_path(self) -> str:
        return self._queue.path

    async def list_tasks(self) -> list[dict]:
        """Return every task currently queued (all pages).

        Raises:
            SchedulingError: If the queue cannot be listed.
        """
        url = f"{self._api_base_url}/{self._queue.path}/tasks"
        tasks: list[dict] = []
        page_token: str | None = None
        while True:
            params = {"pageSize": str(_PAGE_SIZE)}
            if page_token:
                params["pageToken"] = page_token
            try:
                data = await self._google.request_json(method="GET", url=url, params=params)
            except SafeError as exc:
                raise SchedulingError(message="Failed to list queued tasks", status_code=exc.status_code) from exc
            if not isinstance(data, dict):
                raise SchedulingError(message="Unexpected task list response")

            tasks.extend(t for t in data.get("tasks", []) if isinstance(t, dict))
            page_token = data.get("nextPageToken")
            if not page_token:
                return tasks

    async def create_task(self, task: dict) -> dict:
        """Enqueue a task and return the created resource.

        Raises:
            SchedulingError: If the task cannot be created.
        """
        url = f"{self._api_base_url}/{self._queue.path}/tasks"
        try:
            # A create whose reply is lost may still have enqueued the task; never resend it.
            created = await self._google.request_json(method="POST", url=url, json_body={"task": task}, retry=False)
        except SafeError as exc:
            raise SchedulingError(message="Failed to create dispatch task", status_code=exc.status_code) from exc
        if not isinstance(created, dict):
            raise SchedulingError(message="Unexpected task creation response")
        return created

    async def delete_task(self, name: str) -> None:
        """Delete a task by its full resource name.

        Errors (including a task that already fired or was deleted) propagate as SafeError.
        """
        if not name.startswith(f"{self._queue.path}/tasks/"):
            raise UpstreamError(message="Task does not belong to the configured queue")
        await self._google.request_json(method="DELETE", url=f"{self._api_base_url}/{name}")
