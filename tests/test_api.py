from fastapi.testclient import TestClient

from docpress.api import app, get_conn, get_context_builder
from docpress.models import JobStatus
from docpress.storage import get_job


def _client(ctx, builder=None):
    def override_conn():
        yield ctx.conn

    app.dependency_overrides[get_conn] = override_conn
    app.dependency_overrides[get_context_builder] = lambda: builder or (lambda conn: ctx)
    return TestClient(app)


def test_health_reports_schema_version(make_context):
    ctx = make_context()
    try:
        response = _client(ctx).get("/health")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["service"] == "DocPress"
    assert body["schema_version"] == "002_job_source_name"


def test_poll_requires_cron_secret(make_context, monkeypatch):
    monkeypatch.setenv("DP_CRON_SECRET", "s3cret")
    ctx = make_context()
    try:
        client = _client(ctx)
        denied = client.post("/api/cron/poll-drive")
        wrong = client.get("/api/cron/poll-drive", headers={"Authorization": "Bearer nope"})
    finally:
        app.dependency_overrides.clear()

    assert denied.status_code == 401
    assert denied.json() == {"success": False, "message": "Unauthorized"}
    assert wrong.status_code == 401
    assert ctx.source.claimed == []


def test_poll_processes_one_file(make_context, monkeypatch):
    monkeypatch.setenv("DP_CRON_SECRET", "s3cret")
    ctx = make_context(with_images=False)
    try:
        response = _client(ctx).get(
            "/api/cron/poll-drive", headers={"Authorization": "Bearer s3cret"}
        )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert get_job(ctx.conn, body["jobId"]).status == JobStatus.DONE


def test_poll_without_files(make_context, monkeypatch):
    monkeypatch.delenv("DP_CRON_SECRET", raising=False)
    ctx = make_context(files=[])
    try:
        response = _client(ctx).post("/api/cron/poll-drive")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "No new files found."}


def test_poll_reports_job_failure(make_context, monkeypatch):
    monkeypatch.delenv("DP_CRON_SECRET", raising=False)
    ctx = make_context()
    ctx.publisher.fail_publish = True
    try:
        response = _client(ctx).post("/api/cron/poll-drive")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert get_job(ctx.conn, body["jobId"]).status == JobStatus.ERROR


def test_poll_reports_setup_failure(make_context, monkeypatch):
    monkeypatch.delenv("DP_CRON_SECRET", raising=False)
    ctx = make_context()

    def broken_builder(conn):
        raise RuntimeError("DP_WP_USERNAME is not set")

    try:
        response = _client(ctx, builder=broken_builder).post("/api/cron/poll-drive")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "message": "Cron job failed",
        "error": "DP_WP_USERNAME is not set",
    }


def test_admin_routes_require_token(make_context, monkeypatch):
    monkeypatch.setenv("DP_ADMIN_TOKEN", "admin")
    ctx = make_context()
    try:
        client = _client(ctx)
        denied = client.get("/admin/jobs")
        allowed = client.get("/admin/jobs", headers={"X-Admin-Token": "admin"})
    finally:
        app.dependency_overrides.clear()

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert allowed.json() == {"jobs": []}


def test_admin_runtime_config_round_trip(make_context, monkeypatch):
    monkeypatch.delenv("DP_ADMIN_TOKEN", raising=False)
    ctx = make_context()
    try:
        client = _client(ctx)
        cfg = client.get("/admin/config/runtime").json()["config"]
        cfg["wordpress"]["post_status"] = "pending"
        saved = client.put("/admin/config/runtime", json={"config": cfg})
        invalid = client.put("/admin/config/runtime", json={"config": {"app": {}}})
        reloaded = client.get("/admin/config/runtime").json()["config"]
    finally:
        app.dependency_overrides.clear()

    assert saved.json() == {"status": "ok"}
    assert invalid.status_code == 400
    assert reloaded["wordpress"]["post_status"] == "pending"


def test_admin_job_detail_and_recover(make_context, monkeypatch):
    monkeypatch.delenv("DP_ADMIN_TOKEN", raising=False)
    monkeypatch.delenv("DP_CRON_SECRET", raising=False)
    ctx = make_context(with_images=False)
    try:
        client = _client(ctx)
        job_id = client.post("/api/cron/poll-drive").json()["jobId"]
        detail = client.get(f"/admin/jobs/{job_id}")
        missing = client.get("/admin/jobs/job_missing")
        recovered = client.post("/admin/jobs/recover", json={"include_errors": True})
    finally:
        app.dependency_overrides.clear()

    body = detail.json()
    assert body["job"]["status"] == "DONE"
    assert {artifact["kind"] for artifact in body["artifacts"]} >= {"RAW_CONTENT", "IMAGE_META"}
    assert missing.status_code == 404
    assert recovered.json() == {"results": []}
