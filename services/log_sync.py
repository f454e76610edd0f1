"""
Drains the offline log store into the remote `logs` table.

A pass reads up to `batch_size` unsynced entries, normalises each one
(invalid UUIDs nulled, unknown category/severity coerced) and inserts them
one by one. Entries the remote store rejects for a reason that will never
change (foreign key, invalid UUID, check constraint) are marked synced and
skipped; anything else stays unsynced for the next pass.

Only one pass runs at a time. Passes are triggered by the background
monitor every `interval` seconds while the remote store is reachable,
immediately when it becomes reachable again, and manually via sync_logs().
"""
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from services.offline_log_store import OfflineLogStore
from services.remote_store import (
	CHECK_VIOLATION,
	FOREIGN_KEY_VIOLATION,
	INVALID_TEXT_REPRESENTATION,
	RemoteStore,
)
from utils.exceptions import RemoteStoreError, RemoteUnavailableError
from utils.validation import to_remote_log_row

logger = logging.getLogger("services.log_sync")

PERMANENT_ERROR_CODES = {FOREIGN_KEY_VIOLATION, INVALID_TEXT_REPRESENTATION, CHECK_VIOLATION}
PERMANENT_ERROR_HINTS = ("foreign key", "invalid input syntax")


@dataclass
class SyncResult:
	success: bool
	synced: int
	failed: int

	def to_dict(self) -> Dict[str, object]:
		return asdict(self)


def is_permanent_error(exc: RemoteStoreError) -> bool:
	if exc.code in PERMANENT_ERROR_CODES:
		return True
	message = str(exc).lower()
	return any(hint in message for hint in PERMANENT_ERROR_HINTS)


class LogSyncService:
	def __init__(
		self,
		store: OfflineLogStore,
		remote: RemoteStore,
		interval: float = 30.0,
		batch_size: int = 50,
		retention_days: int = 7,
	):
		self.store = store
		self.remote = remote
		self.interval = interval
		self.batch_size = batch_size
		self.retention_days = retention_days
		self.is_online = True
		self._sync_lock = threading.Lock()
		self._stop = threading.Event()
		self._thread: Optional[threading.Thread] = None

	# lifecycle

	def initialize(self, start_monitor: bool = True) -> None:
		self.store.initialize()
		self._stop.clear()
		if start_monitor and self._thread is None:
			self._thread = threading.Thread(target=self._run, name="log-sync", daemon=True)
			self._thread.start()
			logger.info("log_sync_started", extra={"interval_s": self.interval})

	def shutdown(self) -> None:
		self._stop.set()
		if self._thread is not None:
			self._thread.join(timeout=5)
			self._thread = None
			logger.info("log_sync_stopped")

	def _run(self) -> None:
		while not self._stop.wait(self.interval):
			try:
				online = self.remote.ping()
				if online and self.is_online:
					self.sync_logs()
				else:
					self.set_online(online)
			except Exception:
				logger.error("log_sync_tick_failed", exc_info=True)

	# connectivity

	def set_online(self, online: bool) -> None:
		was_online = self.is_online
		self.is_online = online
		if online and not was_online:
			logger.info("log_sync_connection_restored")
			self.sync_logs()
		elif was_online and not online:
			logger.warning("log_sync_connection_lost")

	# sync

	def sync_logs(self) -> SyncResult:
		if not self.is_online:
			# Recheck before giving up; a manual sync must not wait for the monitor tick
			if not self.remote.ping():
				return SyncResult(success=False, synced=0, failed=0)
			logger.info("log_sync_connection_restored")
			self.is_online = True
		if not self._sync_lock.acquire(blocking=False):
			return SyncResult(success=False, synced=0, failed=0)

		synced_count = 0
		failed_count = 0
		synced_ids: List[int] = []
		try:
			entries = self.store.get_unsynced_logs(self.batch_size)
			if not entries:
				return SyncResult(success=True, synced=0, failed=0)

			logger.info("log_sync_batch", extra={"count": len(entries)})
			for entry in entries:
				try:
					self.remote.insert("logs", to_remote_log_row(entry))
				except RemoteUnavailableError:
					raise
				except RemoteStoreError as exc:
					if is_permanent_error(exc):
						synced_ids.append(entry.id)
						logger.debug("log_sync_skipped_invalid", extra={"log_id": entry.id, "code": exc.code, "error": str(exc)})
					else:
						failed_count += 1
						logger.error("log_sync_entry_failed", extra={"log_id": entry.id, "code": exc.code, "error": str(exc)})
				else:
					synced_ids.append(entry.id)
					synced_count += 1

			self._flush(synced_ids)
			self.store.clear_old_logs(self.retention_days)
			if synced_count:
				logger.info("log_sync_completed", extra={"synced": synced_count, "failed": failed_count})
			return SyncResult(success=failed_count == 0, synced=synced_count, failed=failed_count)
		except RemoteUnavailableError as exc:
			logger.warning("log_sync_remote_unavailable", extra={"error": str(exc), "synced": synced_count})
			self.is_online = False
			self._flush(synced_ids)
			return SyncResult(success=False, synced=synced_count, failed=failed_count)
		except Exception:
			logger.error("log_sync_failed", exc_info=True)
			return SyncResult(success=False, synced=synced_count, failed=failed_count)
		finally:
			self._sync_lock.release()

	def _flush(self, ids: List[int]) -> None:
		if not ids:
			return
		try:
			self.store.mark_as_synced(ids)
		except Exception:
			# Entries stay unsynced and are retried; the remote rows may duplicate
			logger.error("log_sync_mark_failed", exc_info=True, extra={"count": len(ids)})

	# diagnostics

	def get_storage_stats(self) -> Dict[str, int]:
		return self.store.get_log_count()

	def is_currently_online(self) -> bool:
		return self.is_online

	def is_sync_in_progress(self) -> bool:
		return self._sync_lock.locked()
