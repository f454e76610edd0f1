from fastapi import APIRouter, Depends, HTTPException, Query, Security
from pydantic import BaseModel
from providers.registry import list_llm_providers, list_ocr_providers
from services.container import AppServices
from utils.dependencies import get_app_services
from utils.jwt import require_admin
from utils.response import api_response
from datetime import datetime, timedelta
from typing import List, Optional
import logging

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Security(require_admin)])
logger = logging.getLogger("api.admin")


class HealthCheckIn(BaseModel):
	ocr_providers: Optional[List[str]] = None
	llm_providers: Optional[List[str]] = None


@router.get("/logs")
def query_logs(
	severity: Optional[List[str]] = Query(None),
	category: Optional[str] = None,
	job_id: Optional[str] = None,
	document_id: Optional[str] = None,
	hours: Optional[int] = Query(None, ge=1),
	limit: int = Query(100, ge=1, le=1000),
	services: AppServices = Depends(get_app_services),
):
	since = datetime.utcnow() - timedelta(hours=hours) if hours else None
	rows = services.analytics.query_logs(severity, category, job_id, document_id, since, limit)
	return api_response(data=rows)


@router.get("/logs/error-patterns")
def error_patterns(limit: int = Query(100, ge=1, le=1000), services: AppServices = Depends(get_app_services)):
	return api_response(data=services.analytics.error_patterns(limit))


@router.get("/logs/recent-failures")
def recent_failures(hours: int = Query(24, ge=1), services: AppServices = Depends(get_app_services)):
	return api_response(data=services.analytics.recent_failures(hours))


@router.get("/providers/health")
def provider_health(services: AppServices = Depends(get_app_services)):
	return api_response(data=[h.model_dump() for h in services.health.list_all()])


@router.post("/providers/health-check")
def run_health_check(body: Optional[HealthCheckIn] = None, services: AppServices = Depends(get_app_services)):
	"""Probe providers with an empty OCR buffer and a one-field LLM prompt."""
	body = body or HealthCheckIn()
	ocr_names = body.ocr_providers if body.ocr_providers is not None else list_ocr_providers()
	llm_names = body.llm_providers if body.llm_providers is not None else list_llm_providers()
	unknown = [n for n in ocr_names if n not in list_ocr_providers()] + [n for n in llm_names if n not in list_llm_providers()]
	if unknown:
		raise HTTPException(status_code=400, detail=f"Unknown providers: {', '.join(unknown)}")
	results = [services.ocr.check_health(n) for n in ocr_names] + [services.llm.check_health(n) for n in llm_names]
	summary = {status: sum(1 for r in results if r.status == status) for status in ("healthy", "degraded", "down")}
	logger.info("provider_health_check", extra=summary)
	return api_response(data={"results": [r.model_dump() for r in results], "summary": summary})


@router.get("/providers/error-rates")
def provider_error_rates(services: AppServices = Depends(get_app_services)):
	return api_response(data=services.analytics.provider_error_rates())


@router.get("/jobs/slow")
def slow_jobs(threshold_ms: int = Query(30000, ge=0), services: AppServices = Depends(get_app_services)):
	return api_response(data=services.analytics.find_slow_jobs(threshold_ms))


@router.get("/jobs/{job_id}/timeline")
def job_timeline(job_id: str, services: AppServices = Depends(get_app_services)):
	if not services.processor.get_job(job_id):
		raise HTTPException(status_code=404, detail="Job not found")
	return api_response(data=services.analytics.job_timeline(job_id))


@router.get("/reports/daily")
def daily_report(services: AppServices = Depends(get_app_services)):
	return api_response(data=services.analytics.daily_report())
