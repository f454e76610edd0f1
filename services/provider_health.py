import logging
from datetime import datetime
from typing import Optional

from models.provider import ProviderHealth
from services.remote_store import RemoteStore

logger = logging.getLogger("services.provider_health")

HEALTHY = "healthy"
DEGRADED = "degraded"
DOWN = "down"


class ProviderHealthRecorder:
	"""Keeps one `provider_health` row per (provider_name, provider_type)."""

	def __init__(self, remote: RemoteStore):
		self.remote = remote

	def record(
		self,
		provider_name: str,
		provider_type: str,
		status: str,
		response_time_ms: int,
		error_message: Optional[str] = None,
	) -> None:
		try:
			current = self.get_status(provider_name, provider_type)
			failures = current.consecutive_failures if current else 0
			failures = failures + 1 if status == DOWN else 0
			self.remote.upsert(
				"provider_health",
				{
					"provider_name": provider_name,
					"provider_type": provider_type,
					"status": status,
					"last_check": datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
					"response_time_ms": response_time_ms,
					"consecutive_failures": failures,
					"error_message": error_message,
				},
				on_conflict=["provider_name", "provider_type"],
			)
		except Exception as exc:
			# Health bookkeeping never fails the provider call it describes
			logger.warning("provider_health_update_failed", extra={"provider": provider_name, "error": str(exc)})

	def get_status(self, provider_name: str, provider_type: str) -> Optional[ProviderHealth]:
		row = self.remote.select_one(
			"provider_health", {"provider_name": provider_name, "provider_type": provider_type}
		)
		return ProviderHealth(**{k: v for k, v in row.items() if k in ProviderHealth.model_fields}) if row else None

	def list_all(self):
		rows = self.remote.select("provider_health", order_by="provider_name")
		return [ProviderHealth(**{k: v for k, v in r.items() if k in ProviderHealth.model_fields}) for r in rows]
