"""HTTP-level tests for the bridge application."""

import json
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from src.bugbridge.bugs.memory import InMemoryBugGateway
from src.bugbridge.main import create_app
from src.bugbridge.metrics import get_metrics
from src.bugbridge.webhook.signature import compute_signature

TEST_SECRET = "test-secret"


def _post(
    client: TestClient,
    path: str,
    event: str,
    payload: dict,
    secret: str = TEST_SECRET,
    signature: Optional[str] = None,
):
    body = json.dumps(payload).encode()
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "72d3162e-cc78-11e3-81ab-4c9367dc0958",
        "X-Hub-Signature-256": signature or compute_signature(body, secret),
    }
    return client.post(path, content=body, headers=headers)


def _pr_payload(title: str = "Bug 100 - Fix the widget", action: str = "opened") -> dict:
    return {
        "action": action,
        "pull_request": {
            "html_url": "https://github.com/acme/widgets/pull/7",
            "title": title,
            "number": 7,
        },
        "repository": {"full_name": "acme/widgets"},
    }


def _push_payload(message: str = "Bug 100 - Fix the widget") -> dict:
    return {
        "ref": "refs/heads/main",
        "pusher": {"name": "octocat"},
        "commits": [
            {"message": message, "url": "https://github.com/acme/widgets/commit/abc1"}
        ],
    }


@pytest.fixture
def client(settings, gateway, metrics):
    gateway.add_bug(100)
    with TestClient(create_app(settings, gateway, metrics)) as test_client:
        yield test_client


class TestPullRequestEndpoint:
    def test_links_pull_request(self, client, gateway) -> None:
        response = _post(client, "/github/pull_request", "pull_request", _pr_payload())

        assert response.status_code == 200
        [attachment] = gateway.attachments_for(100)
        assert response.json() == {"error": 0, "id": attachment.id}

    def test_bad_signature_is_hard_error(self, client) -> None:
        response = _post(
            client, "/github/pull_request", "pull_request", _pr_payload(), secret="nope"
        )

        assert response.status_code == 401
        body = response.json()
        assert body["error"] == 1
        assert body["code"] == "github_pr_mismatch_signatures"
        assert body["message"]

    def test_wrong_event_is_hard_error(self, client) -> None:
        response = _post(client, "/github/pull_request", "push", _pr_payload())

        assert response.status_code == 400
        assert response.json()["code"] == "github_pr_not_pull_request"

    def test_invalid_payload_is_hard_error(self, client) -> None:
        response = _post(client, "/github/pull_request", "pull_request", {"action": "opened"})

        assert response.status_code == 400
        assert response.json()["code"] == "github_pr_invalid_json"

    def test_closed_action_is_soft_error(self, client, gateway) -> None:
        response = _post(
            client, "/github/pull_request", "pull_request", _pr_payload(action="closed")
        )

        assert response.status_code == 200
        body = response.json()
        assert body["error"] == 1
        assert "code" not in body
        assert gateway.attachments_for(100) == []

    def test_ping(self, client) -> None:
        response = _post(client, "/github/pull_request", "ping", {"zen": "Keep it simple."})

        assert response.status_code == 200
        assert response.json() == {"error": 0}

    def test_disabled(self, settings, gateway, metrics) -> None:
        settings.github_pr_linking_enabled = False
        with TestClient(create_app(settings, gateway, metrics)) as client:
            response = _post(client, "/github/pull_request", "pull_request", _pr_payload())

        assert response.status_code == 403
        assert response.json()["code"] == "github_pr_linking_disabled"

    def test_missing_automation_account(self, settings, metrics) -> None:
        gateway = InMemoryBugGateway()
        gateway.add_bug(100)
        with TestClient(create_app(settings, gateway, metrics)) as client:
            response = _post(client, "/github/pull_request", "pull_request", _pr_payload())

        assert response.status_code == 500
        assert response.json()["code"] == "automation_user_missing"


class TestPushEndpoint:
    def test_comments_on_bug(self, client, gateway) -> None:
        response = _post(client, "/github/push_comment", "push", _push_payload())

        assert response.status_code == 200
        [comment] = gateway.comments_for(100)
        assert response.json() == {
            "error": 0,
            "bugs": {"100": {"id": comment.id, "text": comment.text}},
        }
        assert gateway.get_bug(100).status == "RESOLVED"

    def test_no_reference_is_soft_error(self, client) -> None:
        response = _post(
            client, "/github/push_comment", "push", _push_payload(message="Tidy up")
        )

        assert response.status_code == 200
        assert response.json()["error"] == 1

    def test_pull_request_event_rejected(self, client) -> None:
        response = _post(client, "/github/push_comment", "pull_request", _push_payload())

        assert response.status_code == 400
        assert response.json()["code"] == "github_push_comment_not_push"


class TestOperationalEndpoints:
    def test_health(self, client) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_ready(self, client) -> None:
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json()["dependencies"]["database"] == "healthy"

    def test_not_ready_when_database_down(self, settings, metrics) -> None:
        class DownGateway(InMemoryBugGateway):
            async def ping(self) -> bool:
                return False

        with TestClient(create_app(settings, DownGateway(), metrics)) as client:
            response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_metrics_exposed(self, client) -> None:
        _post(client, "/github/pull_request", "pull_request", _pr_payload())

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "bugbridge_webhook_deliveries_total" in response.text
        assert 'outcome="success"' in response.text

    def test_apps_share_default_metrics(self) -> None:
        first = create_app()
        second = create_app()

        assert first is not second
        assert get_metrics() is get_metrics()
