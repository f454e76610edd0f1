import os
import threading
import uuid
from unittest.mock import patch

import pytest

from models.log_entry import LogEntry
from services.log_sync import LogSyncService, is_permanent_error
from services.offline_log_store import OfflineLogStore
from services.remote_store import InMemoryRemoteStore
from utils.exceptions import RemoteStoreError, RemoteUnavailableError


@pytest.fixture
def store(temp_dirs):
	s = OfflineLogStore(os.path.join(temp_dirs["state"], "sync.db"))
	s.initialize()
	return s


@pytest.fixture
def remote():
	return InMemoryRemoteStore()


def _job(remote) -> str:
	document = remote.insert("documents", {"filename": "a.pdf", "file_size": 1, "file_url": "x", "status": "processing"})
	job = remote.insert("processing_jobs", {
		"document_id": document["id"], "structure_template": {}, "ocr_provider": "google-vision",
		"llm_provider": "openai", "status": "pending",
	})
	return job["id"]


def test_unknown_job_id_is_skipped_but_marked_synced(store, remote):
	valid_job = _job(remote)
	store.add_log(LogEntry(category="ocr", message="good", job_id=valid_job))
	store.add_log(LogEntry(category="ocr", message="orphan", job_id=str(uuid.uuid4())))

	result = LogSyncService(store, remote).sync_logs()

	assert result.success is True
	assert result.synced == 1
	assert result.failed == 0
	assert store.get_log_count() == {"total": 2, "unsynced": 0}
	rows = remote.select("logs")
	assert [r["message"] for r in rows] == ["good"]


def test_malformed_ids_and_enums_are_coerced(store, remote):
	store.add_log(LogEntry(severity="fatal", category="billing", message="odd", job_id="123", user_id="nope"))

	result = LogSyncService(store, remote).sync_logs()

	assert result.synced == 1
	[row] = remote.select("logs")
	assert row["severity"] == "info"
	assert row["category"] == "system"
	assert row["job_id"] is None
	assert row["user_id"] is None


def test_transient_errors_stay_unsynced(store, remote):
	store.add_log(LogEntry(message="one"))
	store.add_log(LogEntry(message="two"))

	original = remote.insert

	def flaky(table, row):
		if row["message"] == "two":
			raise RemoteStoreError("connection reset by peer", code="08006")
		return original(table, row)

	with patch.object(remote, "insert", side_effect=flaky):
		result = LogSyncService(store, remote).sync_logs()

	assert result.to_dict() == {"success": False, "synced": 1, "failed": 1}
	assert [e.message for e in store.get_unsynced_logs()] == ["two"]


def test_remote_unreachable_mid_batch_returns_partial_counts(store, remote):
	for i in range(3):
		store.add_log(LogEntry(message=f"event {i}"))

	original = remote.insert
	calls = {"n": 0}

	def drop_after_first(table, row):
		calls["n"] += 1
		if calls["n"] > 1:
			raise RemoteUnavailableError("network is unreachable")
		return original(table, row)

	service = LogSyncService(store, remote)
	with patch.object(remote, "insert", side_effect=drop_after_first):
		result = service.sync_logs()

	assert result.to_dict() == {"success": False, "synced": 1, "failed": 0}
	assert service.is_currently_online() is False
	assert store.get_log_count()["unsynced"] == 2


def test_offline_sync_is_a_no_op(store, remote):
	store.add_log(LogEntry(message="queued"))
	service = LogSyncService(store, remote)
	service.is_online = False
	remote.available = False

	assert service.sync_logs().to_dict() == {"success": False, "synced": 0, "failed": 0}
	assert service.is_currently_online() is False
	assert store.get_log_count()["unsynced"] == 1


def test_manual_sync_after_outage_drains_queue(store, remote):
	store.add_log(LogEntry(message="queued during outage"))
	service = LogSyncService(store, remote)
	with patch.object(remote, "insert", side_effect=RemoteUnavailableError("connection refused")):
		assert service.sync_logs().to_dict() == {"success": False, "synced": 0, "failed": 0}
	assert service.is_currently_online() is False

	result = service.sync_logs()

	assert result.to_dict() == {"success": True, "synced": 1, "failed": 0}
	assert service.is_currently_online() is True
	assert store.get_log_count()["unsynced"] == 0
	assert [row["message"] for row in remote.select("logs")] == ["queued during outage"]


def test_coming_back_online_triggers_a_sync(store, remote):
	store.add_log(LogEntry(message="queued while offline"))
	service = LogSyncService(store, remote)
	service.set_online(False)
	assert store.get_log_count()["unsynced"] == 1

	service.set_online(True)

	assert store.get_log_count()["unsynced"] == 0
	assert len(remote.select("logs")) == 1


def test_concurrent_sync_runs_only_once(store, remote):
	store.add_log(LogEntry(message="first"))
	store.add_log(LogEntry(message="second"))
	service = LogSyncService(store, remote)

	entered = threading.Event()
	release = threading.Event()
	original = remote.insert

	def slow_insert(table, row):
		entered.set()
		release.wait(timeout=5)
		return original(table, row)

	results = {}
	with patch.object(remote, "insert", side_effect=slow_insert):
		worker = threading.Thread(target=lambda: results.setdefault("first", service.sync_logs()))
		worker.start()
		assert entered.wait(timeout=5)
		assert service.is_sync_in_progress() is True
		results["second"] = service.sync_logs()
		release.set()
		worker.join(timeout=5)

	assert results["second"].to_dict() == {"success": False, "synced": 0, "failed": 0}
	assert results["first"].to_dict() == {"success": True, "synced": 2, "failed": 0}
	assert len(remote.select("logs")) == 2


def test_sync_clears_old_synced_entries(store, remote):
	store.add_log(LogEntry(message="ancient", timestamp="2020-01-01T00:00:00.000000Z"))
	service = LogSyncService(store, remote, retention_days=7)

	service.sync_logs()
	# The entry was synced during this pass and is past retention, so the cleanup removes it
	assert store.get_log_count() == {"total": 0, "unsynced": 0}


def test_permanent_error_classification():
	assert is_permanent_error(RemoteStoreError("x", code="23503"))
	assert is_permanent_error(RemoteStoreError("x", code="22P02"))
	assert is_permanent_error(RemoteStoreError("x", code="23514"))
	assert is_permanent_error(RemoteStoreError('violates foreign key constraint "logs_job_id_fkey"'))
	assert not is_permanent_error(RemoteStoreError("timeout", code="57014"))
