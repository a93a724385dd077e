import pytest

from conftest import BARE_HTML, FakeFetcher
from seoagent import web
from seoagent.config import Settings
from seoagent.errors import FetchError
from seoagent.store import MemorySessionStore

ROOT = "https://site.test/"
ROOT_HTML = BARE_HTML.replace("</body>", '<a href="/about">About</a></body>')


@pytest.fixture
def runtime():
    fetcher = FakeFetcher({ROOT: ROOT_HTML}, default=BARE_HTML)
    rt = web.AgentRuntime(Settings(), fetcher=fetcher, store=MemorySessionStore())
    yield rt
    rt.shutdown()


@pytest.fixture
def client(runtime):
    app = web.create_app(Settings(), runtime)
    return app.test_client()


def test_index_page(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert b"SEO Agent" in resp.data


def test_audit_pasted_html(client):
    resp = client.post("/api/audit", json={"html": BARE_HTML, "url": "https://example.com/"})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["score"] == 30
    assert data["summary"] == {"total_issues": 8, "auto_fixed": 6, "escalated": 2}
    assert data["tags"]["canonical"] == "https://example.com/"


def test_audit_requires_url_or_html(client):
    resp = client.post("/api/audit", json={})
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Missing 'url'"}


def test_audit_rejects_unsupported_scheme(client):
    resp = client.post("/api/audit", json={"url": "ftp://example.com/file"})
    assert resp.status_code == 400
    assert "Unsupported URL scheme" in resp.get_json()["error"]


def test_audit_fetch_failure_is_bad_gateway(client, monkeypatch):
    def failing(url, settings):
        raise FetchError(url, "Fetch failed: 503", status_code=503)

    monkeypatch.setattr(web, "audit_url", failing)
    resp = client.post("/api/audit", json={"url": "https://down.test/"})
    assert resp.status_code == 502
    assert resp.get_json()["status_code"] == 503


def test_unexpected_error_is_500(client, monkeypatch):
    def broken(url, settings):
        raise RuntimeError("kaboom")

    monkeypatch.setattr(web, "audit_url", broken)
    resp = client.post("/api/audit", json={"url": "https://example.com/"})
    assert resp.status_code == 500
    assert resp.get_json() == {"error": "kaboom"}


def test_unknown_route_stays_404(client):
    assert client.get("/api/nope").status_code == 404


def test_report_for_pasted_html(client):
    resp = client.post("/api/report", json={"html": BARE_HTML})
    assert resp.status_code == 200
    assert resp.mimetype == "text/plain"
    text = resp.get_data(as_text=True)
    assert "Source: Pasted HTML" in text
    assert "Overall Score: 30/100" in text


def test_scheduler_lifecycle(client, runtime):
    resp = client.post("/api/scheduler/start", json={"url": "site.test", "interval": 1000})
    assert resp.status_code == 202
    assert resp.get_json()["url"] == ROOT
    runtime.drain(5)

    status = client.get("/api/scheduler").get_json()
    assert status["active"] is True
    assert status["run_count"] == 1
    assert len(status["history"]) == 1
    assert status["history"][0]["pages_audited"] == 2
    assert status["last_run"]["avg_score"] == 30

    resp = client.post("/api/scheduler/run")
    assert resp.status_code == 202
    runtime.drain(5)
    assert client.get("/api/scheduler").get_json()["run_count"] == 2

    stopped = client.post("/api/scheduler/stop").get_json()
    assert stopped["active"] is False

    kinds = [e["kind"] for e in client.get("/api/events?limit=200").get_json()["events"]]
    assert kinds[0] == "started"
    assert "completed" in kinds
    assert kinds[-1] == "stopped"


def test_scheduler_rejects_bad_interval(client):
    resp = client.post("/api/scheduler/start", json={"url": ROOT, "interval": 0})
    assert resp.status_code == 400


def test_manual_run_requires_running_scheduler(client):
    assert client.post("/api/scheduler/run").status_code == 409


def test_monitor_lifecycle(client, runtime):
    resp = client.post("/api/monitor/start", json={"url": ROOT, "interval": 1000})
    assert resp.status_code == 202
    runtime.drain(5)

    monitors = client.get("/api/monitor").get_json()["monitors"]
    assert len(monitors) == 1
    assert monitors[0]["state"] == "watching"
    assert monitors[0]["url"] == ROOT

    events = client.get(f"/api/events?source={ROOT}").get_json()["events"]
    assert [e["kind"] for e in events] == ["started", "checking", "baseline"]

    stopped = client.post("/api/monitor/stop", json={"url": ROOT}).get_json()
    assert stopped["state"] == "stopped"
    assert runtime.monitors == {}
    assert client.get("/api/monitor").get_json()["monitors"] == []
    assert client.post("/api/monitor/stop", json={"url": ROOT}).status_code == 404


def test_stopping_unknown_monitor_is_404(client):
    resp = client.post("/api/monitor/stop", json={"url": "https://never.test/"})
    assert resp.status_code == 404


def test_demo_audit(client):
    data = client.get("/api/demo").get_json()
    assert data["url"] == "https://demo-ecommerce.com/"
    assert data["score"] == 14
