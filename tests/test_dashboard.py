import time
import types

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api import dashboard_router
from services.job_manager import JobKind


class StubBot:
    def __init__(self, logged_in=True, closed=False):
        self.user = "RconArma#0001" if logged_in else None
        self.guilds = [object(), object()]
        self._closed = closed

    def is_closed(self):
        return self._closed


class StubTracker:
    async def count(self):
        return 17


class StubActivity:
    async def recent(self, limit):
        return [{"id": i, "action": "player_banned"} for i in range(limit)][:3]


def _client(bot=None):
    ctx = types.SimpleNamespace(
        bot=bot or StubBot(),
        started_at=time.time() - 30,
        store=types.SimpleNamespace(all=lambda: {"1": object(), "2": object()}),
        jobs=types.SimpleNamespace(running=lambda: [("1", JobKind.AUTOLIST), ("2", JobKind.AUTOLIST), ("1", JobKind.COMMUNITYLIST)]),
        tracker=StubTracker(),
        activity=StubActivity(),
        ip_monitor=types.SimpleNamespace(status=lambda: {"current_ip": "1.2.3.4", "monitoring": True}),
    )
    app = FastAPI()
    app.include_router(dashboard_router.router)
    app.state.ctx = ctx
    return TestClient(app)


def test_health():
    body = _client().get("/api/health").json()
    assert body["status"] == "ok"
    assert body["timestamp"]


def test_status_reports_bot_state():
    body = _client().get("/api/status").json()
    assert body["bot"] == "online"
    assert body["uptime_seconds"] >= 30
    assert _client(StubBot(logged_in=False)).get("/api/status").json()["bot"] == "starting"
    assert _client(StubBot(closed=True)).get("/api/status").json()["bot"] == "stopped"


def test_stats():
    body = _client().get("/api/stats").json()
    assert body["guilds_configured"] == 2
    assert body["jobs"] == {"autolist": 2, "communitylist": 1}
    assert body["tracked_players"] == 17
    assert body["ip_monitor"]["current_ip"] == "1.2.3.4"


def test_bots_and_activity():
    client = _client()
    bots = client.get("/api/bots").json()
    assert bots == [{"name": "RconArma#0001", "status": "online", "guilds": 2}]
    assert len(client.get("/api/activity?limit=5").json()) == 3


def test_context_missing_is_503():
    app = FastAPI()
    app.include_router(dashboard_router.router)
    assert TestClient(app).get("/api/stats").status_code == 503


def test_terminal_rejects_empty_and_disallowed():
    client = _client()
    assert client.post("/api/terminal", json={"command": ""}).status_code == 400
    assert client.post("/api/terminal", json={"command": "rm -rf /"}).status_code == 403
    assert client.post("/api/terminal", json={"command": "pwd; rm -rf /"}).status_code == 403


def test_terminal_runs_allowed_command():
    resp = _client().post("/api/terminal", json={"command": "pwd"})
    assert resp.status_code == 200
    assert resp.json()["output"].strip()


def test_terminal_token(monkeypatch):
    monkeypatch.setattr(dashboard_router.settings, "DASHBOARD_TOKEN", "s3cret")
    client = _client()
    assert client.post("/api/terminal", json={"command": "pwd"}).status_code == 401
    ok = client.post("/api/terminal", json={"command": "pwd"}, headers={"Authorization": "Bearer s3cret"})
    assert ok.status_code == 200
