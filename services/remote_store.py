"""
Generic query client for the hosted relational store.

Two implementations share one interface:

- PostgrestRemoteStore talks to a Supabase/PostgREST endpoint over HTTP.
- InMemoryRemoteStore keeps rows in process memory and enforces the same
  constraints the hosted `logs` table does, reporting violations with the
  same Postgres error codes. It is used when no endpoint is configured
  (local development, tests).

Filters are a dict of column -> value. A column may carry an operator
suffix: `__in` (value is a list), `__gte`, `__lte`, `__gt`, `__lt`.
"""
import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from models.log_entry import CATEGORIES, SEVERITIES
from models.document import JobStatus
from utils.exceptions import RemoteStoreError, RemoteUnavailableError
from utils.validation import is_valid_uuid

logger = logging.getLogger("store.remote")

FOREIGN_KEY_VIOLATION = "23503"
INVALID_TEXT_REPRESENTATION = "22P02"
CHECK_VIOLATION = "23514"
UNIQUE_VIOLATION = "23505"

TABLES = (
	"logs",
	"processing_jobs",
	"documents",
	"docetl_pipelines",
	"docetl_executions",
	"provider_health",
	"structure_templates",
)

_OPS = ("in", "gte", "lte", "gt", "lt")


def _now() -> str:
	return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _split_filter(key: str):
	if "__" in key:
		column, op = key.rsplit("__", 1)
		if op in _OPS:
			return column, op
	return key, "eq"


class RemoteStore(ABC):
	"""Abstract query client over the hosted tables."""

	@abstractmethod
	def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
		pass

	@abstractmethod
	def update(self, table: str, row_id: str, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
		pass

	@abstractmethod
	def get(self, table: str, row_id: str) -> Optional[Dict[str, Any]]:
		pass

	@abstractmethod
	def select(
		self,
		table: str,
		filters: Optional[Dict[str, Any]] = None,
		order_by: Optional[str] = None,
		descending: bool = False,
		limit: Optional[int] = None,
	) -> List[Dict[str, Any]]:
		pass

	@abstractmethod
	def delete(self, table: str, row_id: str) -> bool:
		pass

	@abstractmethod
	def upsert(self, table: str, row: Dict[str, Any], on_conflict: List[str]) -> Dict[str, Any]:
		pass

	@abstractmethod
	def ping(self) -> bool:
		pass

	def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
		rows = self.select(table, filters=filters, limit=1)
		return rows[0] if rows else None


class InMemoryRemoteStore(RemoteStore):
	def __init__(self):
		self._lock = threading.RLock()
		self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {name: {} for name in TABLES}
		self.available = True

	def clear(self) -> None:
		with self._lock:
			for rows in self._tables.values():
				rows.clear()

	def _rows(self, table: str) -> Dict[str, Dict[str, Any]]:
		if table not in self._tables:
			raise RemoteStoreError(f'relation "{table}" does not exist', code="42P01")
		return self._tables[table]

	def _ensure_available(self) -> None:
		if not self.available:
			raise RemoteUnavailableError("remote store unreachable")

	def _check_constraints(self, table: str, row: Dict[str, Any]) -> None:
		if table == "logs":
			if row.get("severity") not in SEVERITIES:
				raise RemoteStoreError('new row violates check constraint "logs_severity_check"', code=CHECK_VIOLATION)
			if row.get("category") not in CATEGORIES:
				raise RemoteStoreError('new row violates check constraint "logs_category_check"', code=CHECK_VIOLATION)
			for column in ("user_id", "job_id", "document_id"):
				value = row.get(column)
				if value is not None and not is_valid_uuid(value):
					raise RemoteStoreError(f'invalid input syntax for type uuid: "{value}"', code=INVALID_TEXT_REPRESENTATION)
			if row.get("job_id") and row["job_id"] not in self._tables["processing_jobs"]:
				raise RemoteStoreError('insert or update on table "logs" violates foreign key constraint "logs_job_id_fkey"', code=FOREIGN_KEY_VIOLATION)
			if row.get("document_id") and row["document_id"] not in self._tables["documents"]:
				raise RemoteStoreError('insert or update on table "logs" violates foreign key constraint "logs_document_id_fkey"', code=FOREIGN_KEY_VIOLATION)
		elif table == "processing_jobs":
			if row.get("status") not in [s.value for s in JobStatus]:
				raise RemoteStoreError('new row violates check constraint "processing_jobs_status_check"', code=CHECK_VIOLATION)
			if row.get("document_id") not in self._tables["documents"]:
				raise RemoteStoreError('insert or update on table "processing_jobs" violates foreign key constraint', code=FOREIGN_KEY_VIOLATION)

	def insert(self, table, row):
		with self._lock:
			self._ensure_available()
			rows = self._rows(table)
			record = copy.deepcopy(row)
			record.setdefault("id", str(uuid.uuid4()))
			record.setdefault("created_at", _now())
			self._check_constraints(table, record)
			if record["id"] in rows:
				raise RemoteStoreError("duplicate key value violates unique constraint", code=UNIQUE_VIOLATION)
			rows[record["id"]] = record
			return copy.deepcopy(record)

	def update(self, table, row_id, values):
		with self._lock:
			self._ensure_available()
			rows = self._rows(table)
			if row_id not in rows:
				return None
			record = dict(rows[row_id])
			record.update(copy.deepcopy(values))
			self._check_constraints(table, record)
			rows[row_id] = record
			return copy.deepcopy(record)

	def get(self, table, row_id):
		with self._lock:
			self._ensure_available()
			record = self._rows(table).get(row_id)
			return copy.deepcopy(record) if record is not None else None

	def select(self, table, filters=None, order_by=None, descending=False, limit=None):
		with self._lock:
			self._ensure_available()
			rows = [r for r in self._rows(table).values() if self._matches(r, filters or {})]
			if order_by:
				rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by) or ""), reverse=descending)
			if limit is not None:
				rows = rows[:limit]
			return copy.deepcopy(rows)

	@staticmethod
	def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
		for key, expected in filters.items():
			column, op = _split_filter(key)
			value = row.get(column)
			if op == "eq" and value != expected:
				return False
			if op == "in" and value not in expected:
				return False
			if op in ("gte", "lte", "gt", "lt"):
				if value is None:
					return False
				if op == "gte" and not value >= expected:
					return False
				if op == "lte" and not value <= expected:
					return False
				if op == "gt" and not value > expected:
					return False
				if op == "lt" and not value < expected:
					return False
		return True

	def delete(self, table, row_id):
		with self._lock:
			self._ensure_available()
			return self._rows(table).pop(row_id, None) is not None

	def upsert(self, table, row, on_conflict):
		with self._lock:
			self._ensure_available()
			existing = self.select_one(table, {key: row.get(key) for key in on_conflict})
			if existing:
				return self.update(table, existing["id"], row)
			return self.insert(table, row)

	def ping(self):
		return self.available


class PostgrestRemoteStore(RemoteStore):
	def __init__(self, base_url: str, api_key: str, timeout: float = 15.0):
		self.base_url = base_url.rstrip("/") + "/rest/v1"
		self.timeout = timeout
		self.session = requests.Session()
		self.session.headers.update({
			"apikey": api_key,
			"Authorization": f"Bearer {api_key}",
			"Content-Type": "application/json",
			"Prefer": "return=representation",
		})

	@staticmethod
	def _params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
		params: Dict[str, str] = {}
		for key, value in (filters or {}).items():
			column, op = _split_filter(key)
			if op == "in":
				params[column] = "in.(" + ",".join(str(v) for v in value) + ")"
			elif value is None and op == "eq":
				params[column] = "is.null"
			else:
				params[column] = f"{op}.{value}"
		return params

	def _request(self, method: str, table: str, **kwargs) -> Any:
		url = f"{self.base_url}/{table}"
		try:
			response = self.session.request(method, url, timeout=self.timeout, **kwargs)
		except (requests.ConnectionError, requests.Timeout) as exc:
			raise RemoteUnavailableError(str(exc)) from exc
		if response.status_code >= 400:
			try:
				body = response.json()
			except ValueError:
				body = {"message": response.text}
			raise RemoteStoreError(body.get("message") or response.reason, code=body.get("code"))
		if not response.content:
			return None
		return response.json()

	def insert(self, table, row):
		data = self._request("POST", table, json=row)
		return data[0] if data else row

	def update(self, table, row_id, values):
		data = self._request("PATCH", table, params={"id": f"eq.{row_id}"}, json=values)
		return data[0] if data else None

	def get(self, table, row_id):
		data = self._request("GET", table, params={"id": f"eq.{row_id}", "select": "*"})
		return data[0] if data else None

	def select(self, table, filters=None, order_by=None, descending=False, limit=None):
		params = self._params(filters)
		params["select"] = "*"
		if order_by:
			params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
		if limit is not None:
			params["limit"] = str(limit)
		return self._request("GET", table, params=params) or []

	def delete(self, table, row_id):
		data = self._request("DELETE", table, params={"id": f"eq.{row_id}"})
		return bool(data)

	def upsert(self, table, row, on_conflict):
		headers = {"Prefer": "resolution=merge-duplicates,return=representation"}
		data = self._request("POST", table, params={"on_conflict": ",".join(on_conflict)}, json=row, headers=headers)
		return data[0] if data else row

	def ping(self):
		try:
			response = self.session.get(self.base_url + "/", timeout=5)
			return response.status_code < 500
		except requests.RequestException as exc:
			logger.warning("remote_ping_failed", extra={"error": str(exc)})
			return False


def build_remote_store(url: str, api_key: str) -> RemoteStore:
	if url and api_key:
		logger.info("remote_store_postgrest", extra={"path": url})
		return PostgrestRemoteStore(url, api_key)
	logger.info("remote_store_in_memory")
	return InMemoryRemoteStore()
