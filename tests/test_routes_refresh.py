from __future__ import annotations

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import MemoryStorage, open_harness, run
from viewtrack.main import create_app
from viewtrack.models import CreatorType
from viewtrack.services.container import ServiceContainer
from viewtrack.settings import Settings

URL = "/api/cron/refresh-videos"
CRON_SECRET = "cron-secret"


def _provider(request: httpx.Request) -> httpx.Response:
    if request.url.host == "api.apify.com":
        return httpx.Response(200, json=[{"id": "v1", "playCount": 500}, {"id": "v2", "playCount": 600}])
    return httpx.Response(404)


def _settings(db_url: str, **overrides) -> Settings:
    values = {
        "DATABASE_URL": db_url,
        "CRON_SECRET": CRON_SECRET,
        "APIFY_TOKEN": "apify-token",
        "YOUTUBE_API_KEY": None,
        **overrides,
    }
    return Settings(_env_file=None, **values)


def _client(db_url: str, **overrides) -> TestClient:
    container = ServiceContainer.build(
        _settings(db_url, **overrides),
        storage=MemoryStorage(),
        http=httpx.AsyncClient(transport=httpx.MockTransport(_provider)),
    )
    return TestClient(create_app(container, start_scheduler=False))


@pytest.fixture
def seeded(db_url):
    async def seed():
        h = await open_harness(db_url)
        org, project = await h.org_project()
        account = await h.account(org, project, creator_type=CreatorType.static)
        await h.videos(account, ["v1", "v2"])
        await h.close()
        return {"org": org.id, "project": project.id}

    return run(seed())


def test_rejects_unauthenticated_trigger(db_url, seeded):
    with _client(db_url) as client:
        anonymous = client.post(URL, json={})
        wrong_secret = client.post(URL, headers={"Authorization": "Bearer nope"})

    assert anonymous.status_code == 401
    assert anonymous.json() == {"success": False, "error": "Unauthorized", "errorType": "AUTHENTICATION_ERROR"}
    assert wrong_secret.status_code == 401


def test_manual_trigger_runs_and_reports(db_url, seeded):
    with _client(db_url) as client:
        resp = client.post(URL, json={"manual": True})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["trigger"] == "manual"
    assert body["stats"]["totalAccountsProcessed"] == 1
    assert body["stats"]["totalVideosUpdated"] == 2
    assert body["stats"]["failedAccounts"] == 0
    assert body["failures"] == []


def test_cron_secret_trigger_is_scheduled(db_url, seeded):
    with _client(db_url) as client:
        resp = client.post(
            URL,
            headers={"Authorization": f"Bearer {CRON_SECRET}"},
            json={"organizationId": seeded["org"], "projectId": seeded["project"]},
        )

    assert resp.status_code == 200
    assert resp.json()["trigger"] == "scheduled"
    assert resp.json()["stats"]["totalOrganizations"] == 1


def test_unknown_organization_is_404(db_url, seeded):
    with _client(db_url) as client:
        resp = client.post(URL, json={"manual": True, "organizationId": 424242})

    assert resp.status_code == 404
    assert resp.json()["errorType"] == "ORG_NOT_FOUND"


def test_project_without_organization_is_422(db_url, seeded):
    with _client(db_url) as client:
        resp = client.post(URL, json={"manual": True, "projectId": seeded["project"]})

    assert resp.status_code == 422


def test_missing_provider_credentials_is_500(db_url, seeded):
    with _client(db_url, APIFY_TOKEN=None) as client:
        resp = client.post(URL, json={"manual": True})

    assert resp.status_code == 500
    assert resp.json()["errorType"] == "CONFIGURATION_ERROR"


def test_run_crash_returns_processing_error(db_url, seeded, monkeypatch):
    client = _client(db_url)

    async def explode(trigger, scopes=None):
        raise RuntimeError("database went away")

    monkeypatch.setattr(client.app.state.container.orchestrator, "run", explode)
    with client:
        resp = client.post(URL, json={"manual": True})

    assert resp.status_code == 200
    assert resp.json() == {"success": False, "error": "database went away", "errorType": "PROCESSING_ERROR"}


def test_ping(db_url):
    with _client(db_url) as client:
        assert client.get("/ping").json() == {"status": "ok"}
