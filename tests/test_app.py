"""HTTP contract of the request handler."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from queue_build.app import FORBIDDEN_BODY, api_key_matches, create_app
from queue_build.errors import ConfigError
from queue_build.runtime import Runtime, build_runtime

from tests.fakes import FIXED_NOW, FakeCloud, make_config

API_KEY = "s3cret-key"


def _client(private_key_pem: str, cloud: FakeCloud, audit_log_path: Path | None = None) -> tuple[TestClient, Runtime]:
    runtime = build_runtime(
        make_config(private_key_pem, api_key=API_KEY, audit_log_path=audit_log_path),
        transport=cloud.transport(),
        clock=lambda: FIXED_NOW,
    )
    return TestClient(create_app(lambda: runtime)), runtime


def test_healthz(private_key_pem: str, cloud: FakeCloud) -> None:
    client, _ = _client(private_key_pem, cloud)
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.parametrize("headers", [{}, {"x-api-key": "wrong"}, {"x-api-key": ""}])
def test_bad_api_key_is_rejected_without_outbound_calls(
    private_key_pem: str, cloud: FakeCloud, headers: dict[str, str]
) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    client, runtime = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers=headers)

    assert response.status_code == 403
    assert response.text == FORBIDDEN_BODY
    assert cloud.calls == []
    assert runtime.cache.records() == []


def test_valid_request_schedules_and_answers_success(private_key_pem: str, cloud: FakeCloud) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    client, runtime = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    assert response.status_code == 200
    assert response.text == "success"
    assert response.headers["content-type"].startswith("text/plain")
    assert len(runtime.cache.records()) == 1
    assert len(cloud.tasks_for("acme/widgets")) == 1


def test_header_name_is_case_insensitive(private_key_pem: str, cloud: FakeCloud) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"X-API-Key": API_KEY})

    assert response.status_code == 200


@pytest.mark.parametrize(
    "body",
    [
        {"owner": "acme"},
        {"owner": "acme", "repo": ""},
        {"owner": "acme", "repo": 5},
        {"owner": "../etc", "repo": "widgets"},
        {"owner": "acme\n", "repo": "widgets"},
        {"owner": "acme", "repo": "widgets\n"},
        ["acme", "widgets"],
    ],
)
def test_missing_or_malformed_fields_are_user_errors(private_key_pem: str, cloud: FakeCloud, body: object) -> None:
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", json=body, headers={"x-api-key": API_KEY})

    assert response.status_code == 400
    assert response.json()["code"] == "UserInput"
    assert cloud.calls == []


def test_non_json_body_is_a_user_error(private_key_pem: str, cloud: FakeCloud) -> None:
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", content=b"owner=acme", headers={"x-api-key": API_KEY})

    assert response.status_code == 400


def test_not_installed_maps_to_404_with_stable_payload(private_key_pem: str, cloud: FakeCloud) -> None:
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    assert response.status_code == 404
    payload = response.json()
    assert payload["ok"] is False
    assert payload["code"] == "NotFound"
    assert set(payload) <= {"ok", "code", "message", "hint", "correlation_id"}


def test_no_dispatch_workflow_maps_to_404_and_enqueues_nothing(private_key_pem: str, cloud: FakeCloud) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1, "name": "lint"}])
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    assert response.status_code == 404
    assert cloud.tasks == {}


def test_revoked_installation_maps_to_403_json(private_key_pem: str, cloud: FakeCloud) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    cloud.revoked.add(77)
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    assert response.status_code == 403
    assert response.json()["code"] == "Auth"


def test_queue_failure_maps_to_502(private_key_pem: str, cloud: FakeCloud) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    cloud.fail_create_task = True
    client, _ = _client(private_key_pem, cloud)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    assert response.status_code == 502
    assert response.json()["code"] == "Scheduling"


def test_configuration_error_maps_to_500(cloud: FakeCloud) -> None:
    def broken_runtime() -> Runtime:
        raise ConfigError(message="Missing required configuration (GITHUB_APP_ID)")

    client = TestClient(create_app(broken_runtime))

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    assert response.status_code == 500
    assert response.json()["code"] == "Config"
    assert cloud.calls == []


def test_error_responses_and_audit_never_leak_secrets(
    private_key_pem: str, cloud: FakeCloud, tmp_path: Path
) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    cloud.fail_create_task = True
    audit_path = tmp_path / "audit" / "events.jsonl"
    client, _ = _client(private_key_pem, cloud, audit_log_path=audit_path)

    response = client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY})

    (line,) = audit_path.read_text(encoding="utf-8").splitlines()
    event = json.loads(line)
    assert event["outcome"] == "failed"
    assert event["target_repo"] == "acme/widgets"
    assert event["correlation_id"] == response.json()["correlation_id"]
    for text in (response.text, line):
        assert "ghs_" not in text
        assert API_KEY not in text
        assert "installation" not in text


def test_success_audit_records_cache_state(private_key_pem: str, cloud: FakeCloud, tmp_path: Path) -> None:
    cloud.install("acme/widgets", 77, [{"id": 1234, "name": "ci-dispatch"}])
    audit_path = tmp_path / "events.jsonl"
    client, _ = _client(private_key_pem, cloud, audit_log_path=audit_path)

    for _ in range(2):
        assert client.post("/", json={"owner": "acme", "repo": "widgets"}, headers={"x-api-key": API_KEY}).text == "success"

    events = [json.loads(line) for line in audit_path.read_text(encoding="utf-8").splitlines()]
    assert [e["cache"] for e in events] == ["miss", "hit"]
    assert all(e["outcome"] == "succeeded" for e in events)


def test_api_key_matches() -> None:
    assert api_key_matches("abc", "abc") is True
    assert api_key_matches("abd", "abc") is False
    assert api_key_matches(None, "abc") is False
    assert api_key_matches("abc", "") is False
