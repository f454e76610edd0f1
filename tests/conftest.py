import os
import shutil
import tempfile
import pytest
from fastapi.testclient import TestClient
import sys

# Ensure project root is on sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
	sys.path.insert(0, PROJECT_ROOT)

# Environment must be in place before any project module is imported
_BASE = tempfile.mkdtemp(prefix="docextract_tests_")
os.environ["STATE_DIR"] = os.path.join(_BASE, "state")
os.environ["LOG_DIR"] = os.path.join(_BASE, "logs")
os.environ["UPLOAD_DIR"] = os.path.join(_BASE, "uploads")
os.environ["OFFLINE_LOG_DB"] = os.path.join(_BASE, "state", "app_logs.db")
os.environ["JWT_SECRET"] = "test_secret"
os.environ["LOG_SYNC_ENABLED"] = "0"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ["ADMIN_EMAILS"] = "admin@example.com"
os.environ["SUPABASE_URL"] = ""
for _key in (
	"GOOGLE_VISION_API_KEY", "OPENAI_API_KEY", "MISTRAL_API_KEY", "ANTHROPIC_API_KEY", "OCR_SPACE_API_KEY",
	"AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AZURE_DOCUMENT_INTELLIGENCE_KEY", "AZURE_DOCUMENT_INTELLIGENCE_ENDPOINT",
):
	os.environ.pop(_key, None)

ADMIN_EMAIL = "admin@example.com"


def pytest_sessionfinish(session, exitstatus):
	shutil.rmtree(_BASE, ignore_errors=True)


@pytest.fixture
def temp_dirs(tmp_path):
	state = tmp_path / "state"
	uploads = tmp_path / "uploads"
	state.mkdir()
	uploads.mkdir()
	return {"base": str(tmp_path), "state": str(state), "uploads": str(uploads)}


@pytest.fixture(scope="session")
def app_client():
	import main as main_module
	# Context manager runs the lifespan, which builds and installs the services
	with TestClient(main_module.app) as client:
		yield client


@pytest.fixture
def services(app_client):
	return app_client.app.state.services


@pytest.fixture(autouse=True)
def reset_in_memory_stores(request):
	# Only tests that drive the API share the session app state
	if "app_client" not in request.fixturenames:
		yield
		return
	app_client = request.getfixturevalue("app_client")
	from routers import auth as auth_router
	services = app_client.app.state.services
	auth_router.fake_users_db.clear()
	services.remote.clear()
	services.templates.seed_defaults()
	services.offline_store.shutdown()
	db_path = services.offline_store.db_path
	if os.path.exists(db_path):
		os.unlink(db_path)
	services.log_sync.set_online(True)
	os.environ["MAX_UPLOAD_MB"] = "25"
	yield


def register_and_login(client: TestClient, email: str = "user@example.com", password: str = "Passw0rd!") -> str:
	resp = client.post("/auth/register", json={"email": email, "password": password})
	assert resp.status_code in (200, 201)
	resp = client.post("/auth/login", json={"email": email, "password": password})
	assert resp.status_code == 200, resp.text
	return resp.json()["data"]["access_token"]


def auth_headers(client: TestClient, email: str = "user@example.com") -> dict:
	return {"Authorization": f"Bearer {register_and_login(client, email=email)}"}
