from fastapi import APIRouter, Depends, HTTPException, Security
from models.provider import TemplateIn
from services.container import AppServices
from utils.dependencies import get_app_services
from utils.jwt import get_current_user_id
from utils.response import api_response
import logging

router = APIRouter(prefix="/templates", tags=["templates"])
logger = logging.getLogger("api.templates")


@router.get("")
def list_templates(user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	return api_response(data=services.templates.list_templates(user_id))


@router.get("/{template_id}")
def get_template(template_id: str, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	row = services.templates.get_template(template_id, user_id)
	if not row:
		raise HTTPException(status_code=404, detail="Template not found")
	return api_response(data=row)


@router.post("")
def create_template(body: TemplateIn, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	row = services.templates.create_template(body, user_id)
	services.app_logger.info("database", "Structure template created", {"templateId": row["id"], "name": body.name})
	return api_response(data=row, message="Template created", status_code=201)
