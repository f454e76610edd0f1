import pytest
from fastapi.testclient import TestClient
from conftest import ADMIN_EMAIL, auth_headers


@pytest.fixture
def admin(app_client):
	return auth_headers(app_client, email=ADMIN_EMAIL)


def _upload(client, headers, **form):
	data = {"template": '{"title": "string"}', **form}
	return client.post("/documents/upload", headers=headers, data=data, files={"file": ("doc.pdf", b"%PDF-1.4", "application/pdf")})


def test_client_log_is_recorded(app_client: TestClient, services):
	headers = auth_headers(app_client)
	body = {"severity": "warning", "category": "upload", "message": "Drag and drop failed", "context": {"browser": "firefox"}}
	resp = app_client.post("/logs", headers=headers, json=body)
	assert resp.status_code == 201
	entry = resp.json()["data"]
	assert entry["user_id"]
	[row] = services.remote.select("logs", {"message": "Drag and drop failed"})
	assert row["context"] == {"browser": "firefox"}
	assert row["user_id"] == entry["user_id"]


def test_client_log_requires_auth(app_client: TestClient):
	resp = app_client.post("/logs", json={"message": "anonymous"})
	assert resp.status_code == 401


def test_log_stats(app_client: TestClient):
	headers = auth_headers(app_client)
	data = app_client.get("/logs/stats", headers=headers).json()["data"]
	assert data["total"] >= 1
	assert data["unsynced"] == 0
	assert data["is_online"] is True
	assert data["is_syncing"] is False


def test_logs_written_while_remote_down_sync_later(app_client: TestClient, services, admin):
	services.remote.available = False
	try:
		services.app_logger.error("ocr", "Provider timed out")
	finally:
		services.remote.available = True
	assert services.offline_store.get_log_count()["unsynced"] == 1

	resp = app_client.post("/logs/sync", headers=admin)
	assert resp.status_code == 200
	assert resp.json()["data"]["success"] is True
	assert resp.json()["data"]["synced"] >= 1
	assert services.remote.select("logs", {"message": "Provider timed out"})


def test_manual_sync_is_admin_only(app_client: TestClient):
	headers = auth_headers(app_client)
	assert app_client.post("/logs/sync", headers=headers).status_code == 403


@pytest.mark.parametrize("path", [
	"/admin/logs",
	"/admin/logs/error-patterns",
	"/admin/providers/health",
	"/admin/reports/daily",
	"/admin/jobs/slow",
])
def test_admin_endpoints_reject_regular_users(app_client: TestClient, path):
	headers = auth_headers(app_client)
	assert app_client.get(path, headers=headers).status_code == 403


def test_admin_log_query(app_client: TestClient, services, admin):
	services.app_logger.error("llm", "LLM quota exceeded")
	services.app_logger.info("llm", "LLM processing completed")

	resp = app_client.get("/admin/logs", headers=admin, params={"severity": ["error"], "category": "llm"})
	assert resp.status_code == 200
	assert [row["message"] for row in resp.json()["data"]] == ["LLM quota exceeded"]

	patterns = app_client.get("/admin/logs/error-patterns", headers=admin).json()["data"]
	assert patterns[0]["pattern"] == "llm:error"
	assert patterns[0]["examples"] == ["LLM quota exceeded"]

	failures = app_client.get("/admin/logs/recent-failures", headers=admin).json()["data"]
	assert "LLM quota exceeded" in [row["message"] for row in failures]


def test_provider_health_check(app_client: TestClient, admin):
	resp = app_client.post(
		"/admin/providers/health-check",
		headers=admin,
		json={"ocr_providers": ["google-vision"], "llm_providers": ["openai"]},
	)
	assert resp.status_code == 200
	data = resp.json()["data"]
	assert [(r["provider"], r["type"], r["status"]) for r in data["results"]] == [
		("google-vision", "ocr", "degraded"),
		("openai", "llm", "degraded"),
	]
	assert data["summary"] == {"healthy": 0, "degraded": 2, "down": 0}

	health = app_client.get("/admin/providers/health", headers=admin).json()["data"]
	assert {(h["provider_name"], h["provider_type"]) for h in health} == {("google-vision", "ocr"), ("openai", "llm")}


def test_health_check_rejects_unknown_provider(app_client: TestClient, admin):
	resp = app_client.post("/admin/providers/health-check", headers=admin, json={"ocr_providers": ["nope"], "llm_providers": []})
	assert resp.status_code == 400
	assert "nope" in resp.json()["message"]


def test_job_timeline_and_reports(app_client: TestClient, services, admin):
	job_id = _upload(app_client, admin).json()["data"]["job"]["id"]
	services.processor.remote.update("processing_jobs", job_id, {"processing_time_ms": 45000})

	timeline = app_client.get(f"/admin/jobs/{job_id}/timeline", headers=admin).json()["data"]
	events = [t["event"] for t in timeline]
	assert events[0] == "Processing job created"
	assert events[-1] == "Document processing completed successfully"

	slow = app_client.get("/admin/jobs/slow", headers=admin).json()["data"]
	assert [j["id"] for j in slow] == [job_id]

	rates = app_client.get("/admin/providers/error-rates", headers=admin).json()["data"]
	assert rates == [{"provider": "google-vision", "total": 1, "failed": 0, "error_rate": 0}]

	report = app_client.get("/admin/reports/daily", headers=admin).json()["data"]
	assert report["summary"]["total_jobs"] == 1
	assert report["summary"]["completed_jobs"] == 1
	assert report["summary"]["success_rate"] == 100
	assert [j["id"] for j in report["slowest_jobs"]] == [job_id]

	assert app_client.get("/admin/jobs/00000000-0000-0000-0000-000000000000/timeline", headers=admin).status_code == 404


def test_request_id_links_response_and_log_entry(app_client: TestClient):
	headers = {**auth_headers(app_client), "X-Request-ID": "req_client42"}
	resp = app_client.post("/logs", headers=headers, json={"category": "api", "message": "Retrying upload"})
	assert resp.headers["X-Request-ID"] == "req_client42"
	assert resp.json()["request_id"] == "req_client42"
	assert resp.json()["data"]["request_id"] == "req_client42"
