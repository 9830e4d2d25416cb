"""Per-repository metadata cache.

Records are keyed by the lower-cased project name ("owner/repo"); storing a record
for a project that already has one replaces it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .errors import NotFoundError, SafeError, StorageError
from .google_client import GoogleClient

logger = logging.getLogger(__name__)

FIRESTORE_API_URL = "https://firestore.googleapis.com/v1"


def project_name(owner: str, repo: str) -> str:
    # GitHub owner and repository names are case-insensitive.
    return f"{owner}/{repo}".lower()


@dataclass(frozen=True, slots=True)
class ProjectMetadata:
    """Identifiers needed to address one repository's dispatch workflow."""

    project_name: str
    workflow_id: str
    installation_id: str

    def to_document(self) -> dict[str, str]:
        return {
            "projectName": self.project_name,
            "workflowID": self.workflow_id,
            "installationID": self.installation_id,
        }


class MetadataCache(Protocol):
    async def lookup(self, owner: str, repo: str) -> ProjectMetadata | None: ...

    async def store(self, owner: str, repo: str, workflow_id: str, installation_id: str) -> None: ...


class InMemoryMetadataCache:
    """Process-local cache; contents are lost on restart."""

    def __init__(self) -> None:
        self._records: dict[str, ProjectMetadata] = {}

    async def lookup(self, owner: str, repo: str) -> ProjectMetadata | None:
        return self._records.get(project_name(owner, repo))

    async def store(self, owner: str, repo: str, workflow_id: str, installation_id: str) -> None:
        name = project_name(owner, repo)
        self._records[name] = ProjectMetadata(
            project_name=name,
            workflow_id=workflow_id,
            installation_id=installation_id,
        )

    def records(self) -> list[ProjectMetadata]:
        return list(self._records.values())


def _string_field(fields: dict, name: str) -> str | None:
    value = fields.get(name)
    if not isinstance(value, dict):
        return None
    # Older records may hold numeric ids.
    for kind in ("stringValue", "integerValue"):
        raw = value.get(kind)
        if raw is not None:
            return str(raw)
    return None


class FirestoreMetadataCache:
    """Firestore-backed cache, one document per project in the configured collection.

    Document ids are derived from the project name since Firestore ids cannot contain "/".
    GitHub owner logins never contain underscores, so the mapping is unambiguous.
    """

    def __init__(
        self,
        *,
        google: GoogleClient,
        project_id: str,
        collection: str = "ids",
        api_base_url: str = FIRESTORE_API_URL,
    ) -> None:
        self._google = google
        self._documents_url = f"{api_base_url.rstrip('/')}/projects/{project_id}/databases/(default)/documents"
        self._collection = collection

    def _document_url(self, owner: str, repo: str) -> str:
        return f"{self._documents_url}/{self._collection}/{owner.lower()}__{repo.lower()}"

    async def lookup(self, owner: str, repo: str) -> ProjectMetadata | None:
        try:
            doc = await self._google.request_json(method="GET", url=self._document_url(owner, repo))
        except NotFoundError:
            return None
        except SafeError as exc:
            raise StorageError(message="Metadata lookup failed", status_code=exc.status_code) from exc

        fields = doc.get("fields") if isinstance(doc, dict) else None
        if not isinstance(fields, dict):
            return None
        workflow_id = _string_field(fields, "workflowID")
        installation_id = _string_field(fields, "installationID")
        if workflow_id is None or installation_id is None:
            logger.warning("Ignoring incomplete metadata record for %s", project_name(owner, repo))
            return None
        return ProjectMetadata(
            project_name=_string_field(fields, "projectName") or project_name(owner, repo),
            workflow_id=workflow_id,
            installation_id=installation_id,
        )

    async def store(self, owner: str, repo: str, workflow_id: str, installation_id: str) -> None:
        record = ProjectMetadata(
            project_name=project_name(owner, repo),
            workflow_id=workflow_id,
            installation_id=installation_id,
        )
        body = {"fields": {k: {"stringValue": v} for k, v in record.to_document().items()}}
        try:
            # PATCH without an update mask creates the document or replaces it whole.
            await self._google.request_json(method="PATCH", url=self._document_url(owner, repo), json_body=body)
        except SafeError as exc:
            raise StorageError(message="Metadata store failed", status_code=exc.status_code) from exc
