"""
Local, durable queue of telemetry events.

Entries are appended with synced=0 and flipped to 1 once they are mirrored
in the remote `logs` table; an entry already written remotely is appended
with synced=1. Only synced entries are ever garbage collected.

The store is a SQLite file. Its schema is versioned with PRAGMA user_version
and upgraded at open by applying every step in MIGRATIONS whose version is
above the stored one. Each step is idempotent.
"""
import json
import logging
import os
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from models.log_entry import LogEntry, utc_timestamp

logger = logging.getLogger("store.offline")

STORE_NAME = "offline_logs"
SCHEMA_VERSION = 2

# Fields kept inside the JSON payload column
PAYLOAD_FIELDS = (
	"category", "message", "context", "error_details",
	"user_id", "job_id", "document_id", "request_id",
)


def _column_names(conn: sqlite3.Connection, table: str) -> set:
	return {info[1] for info in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _migrate_v1_create_store(conn: sqlite3.Connection) -> None:
	"""Initial key-value layout: one JSON document per entry."""
	conn.execute(
		f"CREATE TABLE IF NOT EXISTS {STORE_NAME} ("
		"id INTEGER PRIMARY KEY AUTOINCREMENT, "
		"payload TEXT NOT NULL)"
	)


def _migrate_v2_numeric_synced(conn: sqlite3.Connection) -> None:
	"""
	Promote timestamp/severity/synced to indexed columns and convert the
	boolean `synced` values written by version 1 into 0/1. Rows with no timestamp are
	stamped with the migration time so retention counts from the upgrade.
	"""
	columns = _column_names(conn, STORE_NAME)
	for name, definition in (("timestamp", "TEXT"), ("severity", "TEXT"), ("synced", "INTEGER")):
		if name not in columns:
			conn.execute(f"ALTER TABLE {STORE_NAME} ADD COLUMN {name} {definition}")

	rows = conn.execute(f"SELECT id, payload FROM {STORE_NAME} WHERE synced IS NULL").fetchall()
	for row_id, payload in rows:
		try:
			data = json.loads(payload)
		except (TypeError, ValueError):
			data = {"message": str(payload)}
		raw = data.pop("synced", 0)
		if isinstance(raw, bool):
			synced = 1 if raw else 0
		else:
			synced = 1 if raw in (1, "1", "true") else 0
		conn.execute(
			f"UPDATE {STORE_NAME} SET timestamp = ?, severity = ?, synced = ?, payload = ? WHERE id = ?",
			(
				data.pop("timestamp", None) or utc_timestamp(),
				data.pop("severity", None) or "info",
				synced,
				json.dumps(data, ensure_ascii=False),
				row_id,
			),
		)

	conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{STORE_NAME}_timestamp ON {STORE_NAME}(timestamp)")
	conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{STORE_NAME}_synced ON {STORE_NAME}(synced)")
	conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{STORE_NAME}_severity ON {STORE_NAME}(severity)")


MIGRATIONS = [
	(1, _migrate_v1_create_store),
	(2, _migrate_v2_numeric_synced),
]


class OfflineLogStore:
	def __init__(self, db_path: str):
		self.db_path = db_path
		self._init_lock = threading.Lock()
		self.is_initialized = False

	def _connect(self) -> sqlite3.Connection:
		conn = sqlite3.connect(self.db_path, timeout=30.0)
		conn.row_factory = sqlite3.Row
		return conn

	def initialize(self) -> None:
		"""Open the store and apply pending migrations. Safe to call repeatedly."""
		if self.is_initialized:
			return
		with self._init_lock:
			if self.is_initialized:
				return
			directory = os.path.dirname(os.path.abspath(self.db_path))
			os.makedirs(directory, exist_ok=True)
			conn = self._connect()
			try:
				current = conn.execute("PRAGMA user_version").fetchone()[0]
				for version, step in MIGRATIONS:
					if current < version:
						step(conn)
						conn.execute(f"PRAGMA user_version = {version}")
						conn.commit()
						logger.info("offline_store_migrated", extra={"version": version})
			finally:
				conn.close()
			self.is_initialized = True

	def shutdown(self) -> None:
		self.is_initialized = False

	@staticmethod
	def _to_entry(row: sqlite3.Row) -> LogEntry:
		data: Dict[str, Any] = json.loads(row["payload"])
		return LogEntry(
			id=row["id"],
			timestamp=row["timestamp"],
			severity=row["severity"],
			synced=row["synced"],
			**{key: data.get(key) for key in PAYLOAD_FIELDS if key in data},
		)

	def add_log(self, entry: LogEntry) -> Optional[int]:
		"""Append an entry, unsynced unless entry.synced is set. Never raises; returns the new id or None."""
		try:
			self.initialize()
			payload = {key: getattr(entry, key) for key in PAYLOAD_FIELDS}
			conn = self._connect()
			try:
				cursor = conn.execute(
					f"INSERT INTO {STORE_NAME} (timestamp, severity, synced, payload) VALUES (?, ?, ?, ?)",
					(entry.timestamp, entry.severity, 1 if entry.synced else 0, json.dumps(payload, ensure_ascii=False, default=str)),
				)
				conn.commit()
				return cursor.lastrowid
			finally:
				conn.close()
		except Exception:
			logger.error("offline_store_add_failed", exc_info=True)
			return None

	def get_unsynced_logs(self, limit: int = 50) -> List[LogEntry]:
		self.initialize()
		conn = self._connect()
		try:
			rows = conn.execute(
				f"SELECT * FROM {STORE_NAME} WHERE synced = 0 ORDER BY id LIMIT ?", (limit,)
			).fetchall()
		finally:
			conn.close()
		return [self._to_entry(r) for r in rows]

	def mark_as_synced(self, ids: List[int]) -> int:
		"""Flip synced to 1. Idempotent; unknown ids are ignored. Returns rows touched."""
		if not ids:
			return 0
		self.initialize()
		placeholders = ",".join("?" for _ in ids)
		conn = self._connect()
		try:
			cursor = conn.execute(
				f"UPDATE {STORE_NAME} SET synced = 1 WHERE id IN ({placeholders})", list(ids)
			)
			conn.commit()
			return cursor.rowcount
		finally:
			conn.close()

	def get_all_logs(self, limit: int = 100) -> List[LogEntry]:
		self.initialize()
		conn = self._connect()
		try:
			rows = conn.execute(
				f"SELECT * FROM {STORE_NAME} ORDER BY timestamp DESC, id DESC LIMIT ?", (limit,)
			).fetchall()
		finally:
			conn.close()
		return [self._to_entry(r) for r in rows]

	def clear_old_logs(self, days_to_keep: int = 7) -> int:
		"""Delete synced entries older than the cutoff. Unsynced entries always survive."""
		self.initialize()
		cutoff = (datetime.utcnow() - timedelta(days=days_to_keep)).strftime("%Y-%m-%dT%H:%M:%S")
		conn = self._connect()
		try:
			cursor = conn.execute(
				f"DELETE FROM {STORE_NAME} WHERE synced = 1 AND timestamp < ?", (cutoff,)
			)
			conn.commit()
			removed = cursor.rowcount
		finally:
			conn.close()
		if removed:
			logger.info("offline_store_cleared", extra={"removed": removed, "days_to_keep": days_to_keep})
		return removed

	def get_log_count(self) -> Dict[str, int]:
		self.initialize()
		conn = self._connect()
		try:
			total = conn.execute(f"SELECT COUNT(*) FROM {STORE_NAME}").fetchone()[0]
			unsynced = conn.execute(f"SELECT COUNT(*) FROM {STORE_NAME} WHERE synced = 0").fetchone()[0]
		finally:
			conn.close()
		return {"total": total, "unsynced": unsynced}
