from fastapi import APIRouter, Depends, HTTPException, Security
from models.pipeline import ExecuteIn, PipelineIn
from pipeline.templates import PIPELINE_TEMPLATES, SAMPLE_INPUTS
from services.container import AppServices
from utils.dependencies import get_app_services
from utils.jwt import get_current_user_id
from utils.response import api_response
import logging

router = APIRouter(prefix="/pipelines", tags=["pipelines"])
executions_router = APIRouter(prefix="/executions", tags=["pipelines"])
logger = logging.getLogger("api.pipelines")


def _owned_pipeline(services: AppServices, pipeline_id: str, user_id: str):
	row = services.pipelines.get_pipeline(pipeline_id, user_id)
	if not row:
		raise HTTPException(status_code=404, detail="Pipeline not found")
	return row


@router.get("")
def list_pipelines(user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	return api_response(data=services.pipelines.list_pipelines(user_id))


@router.get("/templates")
def list_pipeline_templates(user_id: str = Security(get_current_user_id)):
	data = [{"kind": kind, **template, "sample_input": SAMPLE_INPUTS.get(kind)} for kind, template in PIPELINE_TEMPLATES.items()]
	return api_response(data=data)


@router.post("")
def create_pipeline(body: PipelineIn, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	row = services.pipelines.create_pipeline(body, user_id)
	return api_response(data=row, message="Pipeline created", status_code=201)


@router.post("/from-template/{kind}")
def create_pipeline_from_template(kind: str, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	row = services.pipelines.create_from_template(kind, user_id)
	return api_response(data=row, message="Pipeline created", status_code=201)


@router.get("/{pipeline_id}")
def get_pipeline(pipeline_id: str, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	return api_response(data=_owned_pipeline(services, pipeline_id, user_id))


@router.put("/{pipeline_id}")
def update_pipeline(pipeline_id: str, body: PipelineIn, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	row = services.pipelines.update_pipeline(pipeline_id, body, user_id)
	if not row:
		raise HTTPException(status_code=404, detail="Pipeline not found")
	return api_response(data=row, message="Pipeline updated")


@router.delete("/{pipeline_id}")
def delete_pipeline(pipeline_id: str, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	if not services.pipelines.delete_pipeline(pipeline_id, user_id):
		raise HTTPException(status_code=404, detail="Pipeline not found")
	return api_response(data=None, message="Pipeline deleted")


@router.post("/{pipeline_id}/execute")
def execute_pipeline(pipeline_id: str, body: ExecuteIn, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	pipeline = _owned_pipeline(services, pipeline_id, user_id)
	if not body.input_data:
		raise HTTPException(status_code=400, detail="input_data must contain at least one item")
	execution = services.executor.execute(pipeline, body.input_data, user_id=user_id)
	return api_response(data=execution, message="Pipeline executed")


@router.get("/{pipeline_id}/executions")
def list_executions(pipeline_id: str, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	_owned_pipeline(services, pipeline_id, user_id)
	return api_response(data=services.pipelines.list_executions(pipeline_id))


@executions_router.get("/{execution_id}")
def get_execution(execution_id: str, user_id: str = Security(get_current_user_id), services: AppServices = Depends(get_app_services)):
	row = services.pipelines.get_execution(execution_id, user_id)
	if not row:
		raise HTTPException(status_code=404, detail="Execution not found")
	return api_response(data=row)
