import re
from typing import Any, Dict, Optional

from models.log_entry import CATEGORIES, SEVERITIES, LogEntry

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_uuid(value: Any) -> bool:
	return isinstance(value, str) and bool(UUID_RE.match(value))


def valid_uuid_or_none(value: Any) -> Optional[str]:
	return value if is_valid_uuid(value) else None


def coerce_category(value: Any) -> str:
	return value if value in CATEGORIES else "system"


def coerce_severity(value: Any) -> str:
	return value if value in SEVERITIES else "info"


def to_remote_log_row(entry: LogEntry) -> Dict[str, Any]:
	"""Shape a local log entry into a row the remote `logs` table accepts."""
	return {
		"severity": coerce_severity(entry.severity),
		"category": coerce_category(entry.category),
		"message": entry.message,
		"context": entry.context or {},
		"error_details": entry.error_details or None,
		"user_id": valid_uuid_or_none(entry.user_id),
		"job_id": valid_uuid_or_none(entry.job_id),
		"document_id": valid_uuid_or_none(entry.document_id),
		"request_id": entry.request_id or None,
		"timestamp": entry.timestamp,
	}
