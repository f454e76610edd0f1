from fastapi import APIRouter, UploadFile, File, Form, Depends, HTTPException, Security
from models.document import ExtractedTextIn, ReprocessIn
from services.container import AppServices
from utils.config import get_max_upload_mb
from utils.dependencies import ensure_access, get_app_services
from utils.response import api_response
from typing import Any, Optional
import json
from tasks.celery_tasks import process_document_task
from utils.jwt import get_current_user
import logging

router = APIRouter(prefix="/documents", tags=["documents"])
jobs_router = APIRouter(prefix="/jobs", tags=["documents"])
logger = logging.getLogger("api.documents")

SUPPORTED_FORMATS = ["pdf", "png", "jpg", "jpeg", "webp"]
ALLOWED_MIMES = {
	"pdf": ["application/pdf"],
	"png": ["image/png"],
	"jpg": ["image/jpeg"],
	"jpeg": ["image/jpeg"],
	"webp": ["image/webp"],
}


def validate_file_extension(filename: str):
	ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
	if ext not in SUPPORTED_FORMATS:
		logger.warning("upload_unsupported_extension", extra={"file_name": filename, "ext": ext})
		raise HTTPException(status_code=400, detail="Unsupported file format")
	return ext


def validate_file_upload(file: UploadFile):
	ext = validate_file_extension(file.filename or "")
	# Generic binary types are accepted and replaced by the type the extension implies
	if file.content_type and file.content_type != "application/octet-stream" and file.content_type not in ALLOWED_MIMES[ext]:
		logger.warning("upload_unsupported_mime", extra={"file_name": file.filename, "mime": file.content_type})
		raise HTTPException(status_code=400, detail="Unsupported MIME type")
	return ext, ALLOWED_MIMES[ext][0]


def resolve_template(services: AppServices, user_id: str, template_id: Optional[str], template: Any):
	"""Structure template from a stored template id or an inline JSON object."""
	if template_id:
		row = services.templates.get_template(template_id, user_id)
		if not row:
			raise HTTPException(status_code=404, detail="Template not found")
		return row["template_schema"]
	if isinstance(template, str):
		try:
			template = json.loads(template)
		except ValueError:
			raise HTTPException(status_code=400, detail="Template must be valid JSON")
	if not isinstance(template, dict) or not template:
		raise HTTPException(status_code=400, detail="A structure template (template_id or template) is required")
	return template


@router.post("/upload")
async def upload_document(
	file: UploadFile = File(...),
	template_id: Optional[str] = Form(None),
	template: Optional[str] = Form(None),
	ocr_provider: str = Form("google-vision"),
	llm_provider: str = Form("openai"),
	llm_model: Optional[str] = Form(None),
	vision_model: Optional[str] = Form(None),
	user: dict = Security(get_current_user),
	services: AppServices = Depends(get_app_services),
):
	user_id = str(user["id"])
	ext, content_type = validate_file_upload(file)

	# Read and size-check the content
	content = await file.read()
	size_bytes = len(content)
	limit_mb = get_max_upload_mb()
	size_mb = size_bytes / (1024 * 1024)
	if size_mb > limit_mb:
		logger.warning("upload_too_large", extra={"file_name": file.filename, "size_mb": round(size_mb, 2)})
		raise HTTPException(status_code=400, detail=f"File too large. Max {limit_mb}MB allowed")
	if size_bytes == 0:
		raise HTTPException(status_code=400, detail="File is empty")

	structure_template = resolve_template(services, user_id, template_id, template)
	document, job = services.processor.create_job(
		file.filename, content, content_type, structure_template, ocr_provider, llm_provider, user_id=user_id,
	)

	# Hand off OCR + LLM to the worker
	process_document_task.delay(job["id"], llm_model, vision_model)

	logger.info(
		"upload_accepted",
		extra={
			"document_id": document["id"],
			"job_id": job["id"],
			"file_name": file.filename,
			"ext": ext,
			"mime": content_type,
			"size_bytes": size_bytes,
		},
	)

	return api_response(
		data={"document": services.processor.get_document(document["id"]), "job": services.processor.get_job(job["id"])},
		message="File uploaded successfully. Processing job triggered.",
		status_code=201,
	)


@router.post("/extracted-text")
def process_extracted_text(
	body: ExtractedTextIn,
	user: dict = Security(get_current_user),
	services: AppServices = Depends(get_app_services),
):
	user_id = str(user["id"])
	if not body.extracted_text.strip():
		raise HTTPException(status_code=400, detail="Extracted text is empty")
	structure_template = resolve_template(services, user_id, body.template_id, body.structure_template)
	job = services.processor.process_extracted_text(body, structure_template, user_id=user_id)
	return api_response(data=job, message=f"Processing {job['status']}", status_code=201)


@router.get("/{document_id}")
def get_document(document_id: str, user: dict = Security(get_current_user), services: AppServices = Depends(get_app_services)):
	document = ensure_access(services.processor.get_document(document_id), user, "Document")
	return api_response(data={"document": document, "current_job": services.processor.current_job(document_id)})


@router.get("/{document_id}/jobs")
def list_document_jobs(document_id: str, user: dict = Security(get_current_user), services: AppServices = Depends(get_app_services)):
	ensure_access(services.processor.get_document(document_id), user, "Document")
	return api_response(data=services.processor.list_jobs(document_id))


@router.post("/{document_id}/reprocess")
def reprocess_document(
	document_id: str,
	body: Optional[ReprocessIn] = None,
	user: dict = Security(get_current_user),
	services: AppServices = Depends(get_app_services),
):
	body = body or ReprocessIn()
	ensure_access(services.processor.get_document(document_id), user, "Document")
	job = services.processor.reprocess(document_id, body.ocr_provider, body.llm_provider)
	process_document_task.delay(job["id"], body.llm_model, body.vision_model)
	return api_response(data=services.processor.get_job(job["id"]), message="Reprocessing triggered", status_code=201)


@jobs_router.get("/{job_id}")
def get_job(job_id: str, user: dict = Security(get_current_user), services: AppServices = Depends(get_app_services)):
	job = services.processor.get_job(job_id)
	if not job:
		raise HTTPException(status_code=404, detail="Job not found")
	ensure_access(services.processor.get_document(job["document_id"]), user, "Job")
	return api_response(data=job)
