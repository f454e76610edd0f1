import logging
import os
from unittest.mock import patch

from services.app_logger import AppLogger, error_details_from
from services.log_sync import LogSyncService
from services.offline_log_store import OfflineLogStore
from services.remote_store import InMemoryRemoteStore
from utils.logging_config import correlation_id_ctx


def _logger(temp_dirs, remote=None):
	store = OfflineLogStore(os.path.join(temp_dirs["state"], "facade.db"))
	store.initialize()
	return AppLogger(store, remote), store


def test_direct_write_marks_offline_copy_synced(temp_dirs):
	remote = InMemoryRemoteStore()
	app_logger, store = _logger(temp_dirs, remote)

	entry = app_logger.info("upload", "File received", {"size": 12})

	assert entry is not None and entry.id is not None
	assert store.get_log_count() == {"total": 1, "unsynced": 0}
	[row] = remote.select("logs")
	assert row["message"] == "File received"
	assert row["context"] == {"size": 12}


def test_direct_write_is_not_resent_by_sync(temp_dirs):
	remote = InMemoryRemoteStore()
	app_logger, store = _logger(temp_dirs, remote)
	app_logger.error("llm", "LLM quota exceeded")

	result = LogSyncService(store, remote).sync_logs()

	assert result.synced == 0
	assert store.get_unsynced_logs() == []
	assert [row["message"] for row in remote.select("logs")] == ["LLM quota exceeded"]


def test_remote_outage_leaves_entry_for_sync(temp_dirs):
	remote = InMemoryRemoteStore()
	remote.available = False
	app_logger, store = _logger(temp_dirs, remote)

	app_logger.warning("api", "Slow response")

	assert store.get_log_count() == {"total": 1, "unsynced": 1}


def test_error_captures_exception_details(temp_dirs):
	app_logger, store = _logger(temp_dirs)
	try:
		raise ValueError("bad page")
	except ValueError as e:
		entry = app_logger.error("ocr", "Page failed", e, {"page": 3})

	assert entry.error_details["message"] == "bad page"
	assert entry.error_details["type"] == "ValueError"
	assert "Traceback" in entry.error_details["stack"]
	[stored] = store.get_unsynced_logs()
	assert stored.error_details["type"] == "ValueError"


def test_request_id_defaults_to_correlation_id(temp_dirs):
	app_logger, _ = _logger(temp_dirs)
	token = correlation_id_ctx.set("req_test123")
	try:
		entry = app_logger.debug("system", "tick")
	finally:
		correlation_id_ctx.reset(token)
	assert entry.request_id == "req_test123"


def test_logging_never_raises_when_store_fails(temp_dirs):
	app_logger, store = _logger(temp_dirs, InMemoryRemoteStore())
	with patch.object(store, "_connect", side_effect=OSError("disk full")):
		entry = app_logger.critical("system", "Still reported")
	assert entry is not None
	assert entry.id is None
	assert [row["message"] for row in app_logger.remote.select("logs")] == ["Still reported"]


def test_events_are_also_emitted_through_python_logging(temp_dirs, caplog):
	app_logger, _ = _logger(temp_dirs)
	with caplog.at_level(logging.INFO, logger="app"):
		app_logger.info("llm", "LLM processing completed")
	assert any(r.name == "app.llm" and r.getMessage() == "LLM processing completed" for r in caplog.records)


def test_error_details_from_plain_values():
	assert error_details_from(None) is None
	assert error_details_from({"code": 1}) == {"code": 1}
	assert error_details_from("boom") == {"message": "boom"}
