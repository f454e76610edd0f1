"""
Read-only queries over the remote `logs` and `processing_jobs` tables for
the admin API.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from services.remote_store import RemoteStore

ERROR_SEVERITIES = ["error", "critical"]


def _iso(moment: datetime) -> str:
	return moment.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class LogAnalytics:
	def __init__(self, remote: RemoteStore):
		self.remote = remote

	def query_logs(
		self,
		severity: Optional[List[str]] = None,
		category: Optional[str] = None,
		job_id: Optional[str] = None,
		document_id: Optional[str] = None,
		since: Optional[datetime] = None,
		limit: int = 100,
	) -> List[Dict[str, Any]]:
		filters: Dict[str, Any] = {}
		if severity:
			filters["severity__in"] = severity
		if category:
			filters["category"] = category
		if job_id:
			filters["job_id"] = job_id
		if document_id:
			filters["document_id"] = document_id
		if since:
			filters["timestamp__gte"] = _iso(since)
		return self.remote.select("logs", filters, order_by="timestamp", descending=True, limit=limit)

	def get_jobs(self, status: Optional[str] = None, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
		filters: Dict[str, Any] = {}
		if status:
			filters["status"] = status
		if since:
			filters["created_at__gte"] = _iso(since)
		return self.remote.select("processing_jobs", filters, order_by="created_at", descending=True)

	def find_slow_jobs(self, threshold_ms: int = 30000) -> List[Dict[str, Any]]:
		jobs = [j for j in self.get_jobs(status="completed") if (j.get("processing_time_ms") or 0) > threshold_ms]
		return sorted(jobs, key=lambda j: j["processing_time_ms"], reverse=True)

	def error_patterns(self, limit: int = 100) -> List[Dict[str, Any]]:
		patterns: Dict[str, Dict[str, Any]] = {}
		for log in self.query_logs(severity=ERROR_SEVERITIES, limit=limit):
			entry = patterns.setdefault(f"{log['category']}:{log['severity']}", {"count": 0, "examples": []})
			entry["count"] += 1
			if len(entry["examples"]) < 3:
				entry["examples"].append(log["message"])
		ranked = [{"pattern": key, **data} for key, data in patterns.items()]
		return sorted(ranked, key=lambda p: p["count"], reverse=True)

	def provider_error_rates(self) -> List[Dict[str, Any]]:
		stats: Dict[str, Dict[str, int]] = {}
		for job in self.get_jobs():
			entry = stats.setdefault(job["ocr_provider"], {"total": 0, "failed": 0})
			entry["total"] += 1
			if job["status"] == "failed":
				entry["failed"] += 1
		rates = [
			{"provider": name, **s, "error_rate": round(s["failed"] / s["total"] * 100, 2) if s["total"] else 0}
			for name, s in stats.items()
		]
		return sorted(rates, key=lambda r: r["error_rate"], reverse=True)

	def recent_failures(self, hours: int = 24) -> List[Dict[str, Any]]:
		return self.query_logs(severity=ERROR_SEVERITIES, since=datetime.utcnow() - timedelta(hours=hours), limit=1000)

	def job_timeline(self, job_id: str) -> List[Dict[str, Any]]:
		logs = self.query_logs(job_id=job_id, limit=1000)
		return [
			{
				"timestamp": log["timestamp"],
				"event": log["message"],
				"category": log["category"],
				"severity": log["severity"],
				"context": log.get("context"),
				"error": log.get("error_details"),
			}
			for log in sorted(logs, key=lambda l: l["timestamp"])
		]

	def daily_report(self) -> Dict[str, Any]:
		today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
		logs = self.query_logs(since=today, limit=10000)
		jobs = self.get_jobs(since=today)
		completed = [j for j in jobs if j["status"] == "completed"]
		failed = [j for j in jobs if j["status"] == "failed"]
		avg_ms = sum(j.get("processing_time_ms") or 0 for j in completed) / len(completed) if completed else 0
		return {
			"date": today.strftime("%Y-%m-%d"),
			"summary": {
				"total_logs": len(logs),
				"error_logs": sum(1 for l in logs if l["severity"] in ERROR_SEVERITIES),
				"total_jobs": len(jobs),
				"completed_jobs": len(completed),
				"failed_jobs": len(failed),
				"success_rate": round(len(completed) / len(jobs) * 100, 2) if jobs else 0,
				"avg_processing_time": round(avg_ms),
			},
			"top_errors": self.error_patterns(50),
			"slowest_jobs": self.find_slow_jobs(30000),
		}
