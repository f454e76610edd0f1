import os
from dataclasses import dataclass, field
from typing import List


def _int_env(name: str, default: int) -> int:
	try:
		return int(os.getenv(name, str(default)))
	except Exception:
		return default


def _bool_env(name: str, default: bool) -> bool:
	raw = os.getenv(name)
	if raw is None:
		return default
	return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
	log_dir: str = "logs"
	state_dir: str = "state"
	offline_log_db: str = "state/app_logs.db"
	upload_dir: str = "uploads"
	log_sync_enabled: bool = True
	log_sync_interval_seconds: int = 30
	log_sync_batch_size: int = 50
	log_retention_days: int = 7
	llm_timeout_seconds: int = 300
	supabase_url: str = ""
	supabase_service_role_key: str = ""
	admin_emails: List[str] = field(default_factory=list)


def get_settings() -> Settings:
	"""Build settings from the environment (call again after changing env vars)."""
	state_dir = os.getenv("STATE_DIR", "state")
	admins = [e.strip().lower() for e in os.getenv("ADMIN_EMAILS", "").split(",") if e.strip()]
	return Settings(
		log_dir=os.getenv("LOG_DIR", "logs"),
		state_dir=state_dir,
		offline_log_db=os.getenv("OFFLINE_LOG_DB", os.path.join(state_dir, "app_logs.db")),
		upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
		log_sync_enabled=_bool_env("LOG_SYNC_ENABLED", True),
		log_sync_interval_seconds=_int_env("LOG_SYNC_INTERVAL_SECONDS", 30),
		log_sync_batch_size=_int_env("LOG_SYNC_BATCH_SIZE", 50),
		log_retention_days=_int_env("LOG_RETENTION_DAYS", 7),
		llm_timeout_seconds=_int_env("LLM_TIMEOUT_SECONDS", 300),
		supabase_url=os.getenv("SUPABASE_URL", ""),
		supabase_service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
		admin_emails=admins,
	)


def get_max_upload_mb() -> int:
	return _int_env("MAX_UPLOAD_MB", 25)
