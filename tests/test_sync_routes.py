"""Unit tests for the sync HTTP routes.

WHAT: Trigger endpoints, date-range parsing, connection status
WHY: The routes are thin; they must pass the right window through and
     report partial runs as such
"""

from datetime import date

from fastapi import FastAPI
from fastapi.testclient import TestClient

from adsync.api.sync_routes import router
from adsync.models.sync_result import RunResult


class _FakeOrchestrator:
    def __init__(self, result: RunResult):
        self.result = result
        self.calls = []

    async def run_sync(self, user_id, date_range=None):
        self.calls.append((user_id, date_range))
        return self.result

    async def run_sync_all_accounts(self, date_range=None):
        self.calls.append((None, date_range))
        return self.result


def _app(orchestrator=None, credentials=None) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.state.orchestrator = orchestrator
    app.state.credentials = credentials
    return TestClient(app)


def test_run_for_user_passes_window():
    orchestrator = _FakeOrchestrator(RunResult(metrics_stored=3).finish())
    resp = _app(orchestrator).post(
        "/sync/run/user-1", params={"since": "2026-10-01", "until": "2026-10-07"}
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == "completed"
    assert body["result"]["metrics_stored"] == 3
    user_id, window = orchestrator.calls[0]
    assert user_id == "user-1"
    assert (window.since, window.until) == (date(2026, 10, 1), date(2026, 10, 7))


def test_partial_run_reports_failure():
    result = RunResult(ads_processed=5)
    result.errors.append("ad set 'Broad' (as1): boom")
    resp = _app(_FakeOrchestrator(result.finish())).post("/sync/run")

    body = resp.json()
    assert body["success"] is False
    assert body["status"] == "completed_with_errors"
    assert body["result"]["ads_processed"] == 5


def test_half_open_or_reversed_window_rejected():
    client = _app(_FakeOrchestrator(RunResult().finish()))

    assert client.post("/sync/run", params={"since": "2026-10-01"}).status_code == 400
    assert client.post(
        "/sync/run", params={"since": "2026-10-07", "until": "2026-10-01"}
    ).status_code == 400


def test_status_reports_connection(credentials, future, past):
    client = _app(credentials=credentials)
    assert client.get("/sync/status/user-1").json()["connected"] is False

    credentials.store_credential("user-1", "tok", "123", past)
    body = client.get("/sync/status/user-1").json()
    assert body["connected"] is False
    assert body["needs_reconnection"] is True

    credentials.store_credential("user-1", "tok", "456", future)
    body = client.get("/sync/status/user-1").json()
    assert body["connected"] is True
    assert body["ad_account_id"] == "456"
