import json
import os
import sqlite3
from datetime import datetime, timedelta

from models.log_entry import LogEntry
from services.offline_log_store import STORE_NAME, OfflineLogStore


def _store(temp_dirs) -> OfflineLogStore:
	store = OfflineLogStore(os.path.join(temp_dirs["state"], "logs.db"))
	store.initialize()
	return store


def _ts(days_ago: int) -> str:
	return (datetime.utcnow() - timedelta(days=days_ago)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def test_add_then_read_back_unsynced(temp_dirs):
	store = _store(temp_dirs)
	entry = LogEntry(
		severity="warning",
		category="ocr",
		message="Page 2 was blank",
		context={"page": 2, "provider": "google-vision"},
		error_details={"message": "empty"},
		user_id="3f0f9a56-5a6e-4a7e-8c1e-0d3c5b8f2a11",
		job_id="not-a-uuid",
		request_id="req_abc",
	)
	new_id = store.add_log(entry)
	assert isinstance(new_id, int)

	[stored] = store.get_unsynced_logs(10)
	assert stored.id == new_id
	assert stored.synced == 0
	assert stored.model_dump(exclude={"id", "synced"}) == entry.model_dump(exclude={"id", "synced"})


def test_mark_as_synced_is_idempotent(temp_dirs):
	store = _store(temp_dirs)
	ids = [store.add_log(LogEntry(message=f"event {i}")) for i in range(3)]

	assert store.mark_as_synced(ids[:2]) == 2
	first = store.get_log_count()
	store.mark_as_synced(ids[:2])
	assert store.get_log_count() == first == {"total": 3, "unsynced": 1}
	assert [e.id for e in store.get_unsynced_logs()] == [ids[2]]


def test_clear_old_logs_keeps_unsynced_entries(temp_dirs):
	store = _store(temp_dirs)
	old_synced = store.add_log(LogEntry(message="old synced", timestamp=_ts(30)))
	old_unsynced = store.add_log(LogEntry(message="old unsynced", timestamp=_ts(30)))
	recent_synced = store.add_log(LogEntry(message="recent synced", timestamp=_ts(1)))
	store.mark_as_synced([old_synced, recent_synced])

	assert store.clear_old_logs(7) == 1
	remaining = {e.id for e in store.get_all_logs()}
	assert remaining == {old_unsynced, recent_synced}


def test_get_unsynced_respects_limit(temp_dirs):
	store = _store(temp_dirs)
	for i in range(5):
		store.add_log(LogEntry(message=f"event {i}"))
	assert len(store.get_unsynced_logs(limit=2)) == 2


def test_add_log_never_raises_on_broken_store(temp_dirs):
	# A directory where the database file should be makes every connect fail
	path = os.path.join(temp_dirs["state"], "broken.db")
	os.makedirs(path)
	store = OfflineLogStore(path)
	assert store.add_log(LogEntry(message="lost")) is None


def test_migrates_boolean_synced_from_version_one(temp_dirs):
	path = os.path.join(temp_dirs["state"], "legacy.db")
	conn = sqlite3.connect(path)
	conn.execute(f"CREATE TABLE {STORE_NAME} (id INTEGER PRIMARY KEY AUTOINCREMENT, payload TEXT NOT NULL)")
	for synced in (True, False, True):
		payload = {"timestamp": _ts(0), "severity": "error", "category": "llm", "message": "legacy", "synced": synced}
		conn.execute(f"INSERT INTO {STORE_NAME} (payload) VALUES (?)", (json.dumps(payload),))
	conn.execute("PRAGMA user_version = 1")
	conn.commit()
	conn.close()

	store = OfflineLogStore(path)
	store.initialize()

	assert store.get_log_count() == {"total": 3, "unsynced": 1}
	[pending] = store.get_unsynced_logs()
	assert pending.synced == 0
	assert pending.severity == "error"
	assert pending.category == "llm"
	assert pending.message == "legacy"

	conn = sqlite3.connect(path)
	assert conn.execute("PRAGMA user_version").fetchone()[0] == 2
	values = {row[0] for row in conn.execute(f"SELECT synced FROM {STORE_NAME}")}
	conn.close()
	assert values == {0, 1}


def test_initialize_twice_is_harmless(temp_dirs):
	store = _store(temp_dirs)
	store.add_log(LogEntry(message="kept"))
	store.shutdown()
	store.initialize()
	assert store.get_log_count()["total"] == 1


def test_migrated_rows_without_timestamp_survive_retention(temp_dirs):
	path = os.path.join(temp_dirs["state"], "legacy.db")
	conn = sqlite3.connect(path)
	conn.execute(f"CREATE TABLE {STORE_NAME} (id INTEGER PRIMARY KEY AUTOINCREMENT, payload TEXT NOT NULL)")
	conn.execute(f"INSERT INTO {STORE_NAME} (payload) VALUES (?)", (json.dumps({"message": "undated", "synced": True}),))
	conn.execute("PRAGMA user_version = 1")
	conn.commit()
	conn.close()

	store = OfflineLogStore(path)
	store.initialize()
	store.clear_old_logs(7)

	assert store.get_log_count() == {"total": 1, "unsynced": 0}
	conn = sqlite3.connect(path)
	[timestamp] = conn.execute(f"SELECT timestamp FROM {STORE_NAME}").fetchone()
	conn.close()
	assert datetime.utcnow() - datetime.strptime(timestamp, "%Y-%m-%dT%H:%M:%S.%fZ") < timedelta(minutes=5)
