"""
Single call-site logging API for application events.

Every call is written to the offline log store first and then, best effort,
straight into the remote `logs` table. When the direct write succeeds the
offline copy is marked synced so the sync service does not send it twice.
Nothing here raises into the caller.
"""
import logging
import traceback
from typing import Any, Dict, Optional

from models.log_entry import LogEntry, utc_timestamp
from services.offline_log_store import OfflineLogStore
from services.remote_store import RemoteStore
from utils.logging_config import correlation_id_ctx, user_id_ctx
from utils.validation import to_remote_log_row

_LEVELS = {
	"debug": logging.DEBUG,
	"info": logging.INFO,
	"warning": logging.WARNING,
	"error": logging.ERROR,
	"critical": logging.CRITICAL,
}


def error_details_from(error: Any) -> Optional[Dict[str, Any]]:
	if error is None:
		return None
	if isinstance(error, BaseException):
		return {
			"message": str(error),
			"type": type(error).__name__,
			"stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
		}
	if isinstance(error, dict):
		return error
	return {"message": str(error)}


class AppLogger:
	def __init__(self, store: OfflineLogStore, remote: Optional[RemoteStore] = None, direct_remote: bool = True):
		self.store = store
		self.remote = remote
		self.direct_remote = direct_remote

	def log(
		self,
		severity: str,
		category: str,
		message: str,
		error: Any = None,
		context: Optional[Dict[str, Any]] = None,
		*,
		job_id: Optional[str] = None,
		document_id: Optional[str] = None,
		user_id: Optional[str] = None,
		request_id: Optional[str] = None,
	) -> Optional[LogEntry]:
		try:
			entry = LogEntry(
				timestamp=utc_timestamp(),
				severity=severity,
				category=category,
				message=message,
				context=context or None,
				error_details=error_details_from(error),
				user_id=user_id or user_id_ctx.get(),
				job_id=job_id,
				document_id=document_id,
				request_id=request_id or correlation_id_ctx.get(),
			)
		except Exception:
			logging.getLogger("app").error("log_entry_invalid", exc_info=True)
			return None

		self._emit(entry)
		# Remote write first; an entry that landed is stored already synced
		if self.direct_remote and self.remote is not None and self._write_remote(entry):
			entry.synced = 1
		entry.id = self.store.add_log(entry)
		return entry

	@staticmethod
	def _emit(entry: LogEntry) -> None:
		logging.getLogger(f"app.{entry.category}").log(
			_LEVELS.get(entry.severity, logging.INFO),
			entry.message,
			extra={
				"category": entry.category,
				"job_id": entry.job_id,
				"document_id": entry.document_id,
				"request_id": entry.request_id,
				"context": entry.context,
				"error": (entry.error_details or {}).get("message"),
			},
		)

	def _write_remote(self, entry: LogEntry) -> bool:
		try:
			self.remote.insert("logs", to_remote_log_row(entry))
		except Exception as exc:
			# Left unsynced in the offline store; the sync service retries or skips it
			logging.getLogger("app").debug("direct_log_write_failed", extra={"error": str(exc)})
			return False
		return True

	def debug(self, category: str, message: str, context: Optional[Dict[str, Any]] = None, **ids) -> Optional[LogEntry]:
		return self.log("debug", category, message, None, context, **ids)

	def info(self, category: str, message: str, context: Optional[Dict[str, Any]] = None, **ids) -> Optional[LogEntry]:
		return self.log("info", category, message, None, context, **ids)

	def warning(self, category: str, message: str, context: Optional[Dict[str, Any]] = None, **ids) -> Optional[LogEntry]:
		return self.log("warning", category, message, None, context, **ids)

	def error(self, category: str, message: str, error: Any = None, context: Optional[Dict[str, Any]] = None, **ids) -> Optional[LogEntry]:
		return self.log("error", category, message, error, context, **ids)

	def critical(self, category: str, message: str, error: Any = None, context: Optional[Dict[str, Any]] = None, **ids) -> Optional[LogEntry]:
		return self.log("critical", category, message, error, context, **ids)
