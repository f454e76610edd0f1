from fastapi import APIRouter, Depends, Security
from models.log_entry import LogIn
from services.container import AppServices
from utils.dependencies import get_app_services
from utils.jwt import get_current_user_id, require_admin
from utils.response import api_response
import logging

router = APIRouter(prefix="/logs", tags=["logs"])
logger = logging.getLogger("api.logs")


@router.post("")
def record_client_log(body: LogIn, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	"""Record an event reported by a client; it goes through the same offline store and sync path."""
	entry = services.app_logger.log(
		body.severity,
		body.category,
		body.message,
		body.error_details,
		body.context,
		job_id=body.job_id,
		document_id=body.document_id,
		user_id=user_id,
	)
	if entry is None:
		return api_response(data=None, message="Log entry rejected", status_code=400)
	return api_response(data=entry.model_dump(), message="Log recorded", status_code=201)


@router.get("/stats")
def log_stats(user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	sync = services.log_sync
	return api_response(data={
		**sync.get_storage_stats(),
		"is_online": sync.is_currently_online(),
		"is_syncing": sync.is_sync_in_progress(),
	})


@router.post("/sync")
def sync_now(admin: dict = Security(require_admin), services: AppServices = Depends(get_app_services)):
	result = services.log_sync.sync_logs()
	logger.info("manual_log_sync", extra=result.to_dict())
	return api_response(data=result.to_dict(), message="Sync completed" if result.success else "Sync incomplete")
