from .celery_app import celery_app
from services.container import get_services
import logging

logger = logging.getLogger("tasks.documents")


@celery_app.task
def process_document_task(job_id, llm_model=None, vision_model=None):
	logger.info("task_started", extra={"job_id": job_id})
	job = get_services().processor.process_job(job_id, llm_model=llm_model, vision_model=vision_model)
	if job is None:
		logger.error("task_failed", extra={"job_id": job_id, "error": "job not found"})
		return None
	# Failures are recorded on the job row by the processor
	log = logger.info if job["status"] == "completed" else logger.warning
	log("task_finished", extra={"job_id": job_id, "status": job["status"]})
	return job["status"]
