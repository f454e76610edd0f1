"""
Document processing: upload -> OCR -> LLM -> persisted job row.

A job moves forward through pending, ocr_processing, llm_processing and ends
in completed or failed. Any exception at any stage fails the job, records
error_message/error_details and stops; nothing is retried automatically.
A retry is a new job for the same document (see reprocess()).
"""
import logging
import os
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from models.document import TERMINAL_STATUSES, Document, ExtractedTextIn, JobStatus, ProcessingJob
from models.log_entry import utc_timestamp
from providers.ocr import PAGE_BREAK
from providers.registry import get_llm_provider, get_ocr_provider
from services.pdf_images import is_pdf, pdf_to_png_pages
from utils.exceptions import ProcessingError, ProviderError
from utils.logging_config import correlation_id_ctx

logger = logging.getLogger("services.orchestrator")

# OCR providers backed by vision chat models; they take one image per call
VISION_OCR_PROVIDERS = ("mistral", "openai-vision")
LOCAL_TEXT_URL = "tesseract://local"


def _new_row(model, **values) -> Dict[str, Any]:
	# Full column set with nulls; created_at is left to the database default
	return model(id=str(uuid.uuid4()), **values).model_dump(exclude={"created_at"})


class DocumentProcessor:
	def __init__(self, remote, storage, ocr_router, llm_router, app_logger, llm_timeout_seconds: float = 300):
		self.remote = remote
		self.storage = storage
		self.ocr_router = ocr_router
		self.llm_router = llm_router
		self.log = app_logger
		self.llm_timeout_seconds = llm_timeout_seconds

	def _update_job(self, job_id: str, **values) -> Dict[str, Any]:
		values["updated_at"] = utc_timestamp()
		return self.remote.update("processing_jobs", job_id, values)

	def _set_document_status(self, document_id: str, status: str) -> None:
		self.remote.update("documents", document_id, {"status": status})

	def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
		return self.remote.get("processing_jobs", job_id)

	def get_document(self, document_id: str) -> Optional[Dict[str, Any]]:
		return self.remote.get("documents", document_id)

	def list_jobs(self, document_id: str) -> List[Dict[str, Any]]:
		return self.remote.select("processing_jobs", {"document_id": document_id}, order_by="created_at", descending=True)

	def current_job(self, document_id: str) -> Optional[Dict[str, Any]]:
		"""The most recently created job is the document's current one."""
		jobs = self.list_jobs(document_id)
		return jobs[0] if jobs else None

	def create_job(
		self,
		filename: str,
		content: bytes,
		content_type: str,
		structure_template: Any,
		ocr_provider: str,
		llm_provider: str,
		user_id: Optional[str] = None,
		request_id: Optional[str] = None,
	) -> Tuple[Dict[str, Any], Dict[str, Any]]:
		# unknown providers are rejected before anything is stored
		get_ocr_provider(ocr_provider)
		get_llm_provider(llm_provider)
		request_id = request_id or correlation_id_ctx.get() or f"req_{uuid.uuid4().hex[:12]}"

		self.log.info("upload", "Starting document processing", {
			"fileName": filename, "fileSize": len(content), "ocrProvider": ocr_provider, "llmProvider": llm_provider,
		}, request_id=request_id)
		upload_start = time.monotonic()
		try:
			file_url = self.storage.save(f"documents/{uuid.uuid4().hex}", filename, content)
		except OSError as e:
			self.log.error("storage", "Storage upload failed", e, {"fileName": filename, "fileSize": len(content)}, request_id=request_id)
			raise
		self.log.info("storage", "File uploaded successfully", {
			"filePath": file_url, "uploadDuration": int((time.monotonic() - upload_start) * 1000),
		}, request_id=request_id)

		document = self.remote.insert("documents", _new_row(Document,
			filename=filename,
			file_size=len(content),
			file_url=file_url,
			content_type=content_type,
			status="processing",
			user_id=user_id,
		))
		self.log.info("database", "Document record created", {"documentId": document["id"]}, document_id=document["id"], request_id=request_id)

		job = self.remote.insert("processing_jobs", _new_row(ProcessingJob,
			document_id=document["id"],
			structure_template=structure_template,
			ocr_provider=ocr_provider,
			llm_provider=llm_provider,
			status=JobStatus.pending.value,
			request_id=request_id,
		))
		self.log.info("database", "Processing job created", {"jobId": job["id"]}, job_id=job["id"], document_id=document["id"], request_id=request_id)
		return document, job

	def reprocess(
		self,
		document_id: str,
		ocr_provider: Optional[str] = None,
		llm_provider: Optional[str] = None,
		request_id: Optional[str] = None,
	) -> Dict[str, Any]:
		"""Create a fresh pending job for an existing document, reusing the latest job's settings."""
		document = self.get_document(document_id)
		previous = self.current_job(document_id)
		if document is None or previous is None:
			raise ProcessingError(f"Document {document_id} has no job to reprocess")
		if document.get("file_url") == LOCAL_TEXT_URL:
			raise ProcessingError("Documents processed from client-side text have no stored file to reprocess")
		ocr_provider = ocr_provider or previous["ocr_provider"]
		llm_provider = llm_provider or previous["llm_provider"]
		get_ocr_provider(ocr_provider)
		get_llm_provider(llm_provider)

		job = self.remote.insert("processing_jobs", _new_row(ProcessingJob,
			document_id=document_id,
			structure_template=previous.get("structure_template"),
			ocr_provider=ocr_provider,
			llm_provider=llm_provider,
			status=JobStatus.pending.value,
			request_id=request_id or correlation_id_ctx.get() or previous.get("request_id"),
		))
		self._set_document_status(document_id, "processing")
		self.log.info("system", "Document reprocessing requested", {
			"previousJobId": previous["id"], "ocrProvider": ocr_provider, "llmProvider": llm_provider,
		}, job_id=job["id"], document_id=document_id)
		return job

	def process_job(self, job_id: str, llm_model: Optional[str] = None, vision_model: Optional[str] = None) -> Optional[Dict[str, Any]]:
		job = self.get_job(job_id)
		if job is None:
			logger.warning("job_not_found", extra={"job_id": job_id})
			return None
		if job["status"] != JobStatus.pending.value:
			logger.warning("job_not_pending", extra={"job_id": job_id, "status": job["status"]})
			return job

		document_id = job["document_id"]
		request_id = job.get("request_id")
		ids = {"job_id": job_id, "document_id": document_id, "request_id": request_id}
		stage, provider = "ocr", job["ocr_provider"]
		start = time.monotonic()
		try:
			document = self.get_document(document_id)
			if document is None:
				raise ProcessingError(f"Document {document_id} not found")
			self._update_job(job_id, status=JobStatus.ocr_processing.value)
			content = self.storage.read(document["file_url"])
			content_type = document.get("content_type") or "application/pdf"
			options = {"model": vision_model} if vision_model else {}

			if provider in VISION_OCR_PROVIDERS and is_pdf(content_type, document.get("filename")):
				text, metadata = self._ocr_pdf_pages(content, document, job, options)
			else:
				result = self.ocr_router.process(content, content_type, provider, options, job_id=job_id, document_id=document_id)
				text, metadata = result.text, result.metadata.model_dump()
			ocr_ms = int((time.monotonic() - start) * 1000)

			self._update_job(
				job_id,
				status=JobStatus.llm_processing.value,
				extracted_text=text,
				provider_metadata=metadata,
				page_count=metadata.get("pages"),
			)

			stage, provider = "llm", job["llm_provider"]
			llm = self.llm_router.generate(text, job.get("structure_template"), provider, model=llm_model, job_id=job_id)
			total_ms = ocr_ms + llm.processing_time
			self._update_job(
				job_id,
				status=JobStatus.completed.value,
				structured_output=llm.structured_output,
				processing_time_ms=total_ms,
			)
			self._set_document_status(document_id, "completed")
			self.log.info("system", "Document processing completed successfully", {
				"totalProcessingTime": total_ms, "ocrProvider": job["ocr_provider"], "llmProvider": job["llm_provider"],
			}, **ids)
		except Exception as e:
			self._fail(job, stage, provider, e, filename=None)
		return self.get_job(job_id)

	def _ocr_pdf_pages(self, content: bytes, document: Dict[str, Any], job: Dict[str, Any], options: Dict[str, Any]):
		provider = job["ocr_provider"]
		ids = {"job_id": job["id"], "document_id": document["id"]}
		self.log.info("ocr", f"{provider} + PDF detected: converting PDF to images", {
			"fileName": document["filename"], "fileSize": len(content), "ocrProvider": provider,
		}, **ids)
		images = pdf_to_png_pages(content)
		total = len(images)
		self.log.info("ocr", f"PDF converted to {total} images", {"pages": total, "ocrProvider": provider}, **ids)

		stem = os.path.splitext(document["filename"])[0]
		texts, confidences = [], []
		language = None
		for number, image in enumerate(images, start=1):
			page_url = self.storage.save(f"documents/{job['id']}", f"{stem}-page-{number}.png", image)
			self.log.debug("ocr", f"Processing page {number}/{total} with {provider}", {"page": number, "pageUrl": page_url}, **ids)
			try:
				result = self.ocr_router.process(image, "image/png", provider, options, **ids)
			except Exception as e:
				raise ProviderError(f"{provider} OCR failed for page {number}: {e}", provider=provider) from e
			texts.append(result.text)
			confidences.append(result.metadata.confidence)
			language = language or result.metadata.language

		combined = PAGE_BREAK.join(texts)
		self.log.info("ocr", f"All pages processed with {provider}", {"totalPages": total, "totalTextLength": len(combined)}, **ids)
		metadata = {
			"provider": provider,
			"confidence": round(sum(confidences) / total, 2),
			"pages": total,
			"language": language,
		}
		return combined, metadata

	def process_extracted_text(self, data: ExtractedTextIn, structure_template: Any, user_id: Optional[str] = None) -> Dict[str, Any]:
		"""Run only the LLM stage for text the client already extracted locally."""
		get_llm_provider(data.llm_provider)
		request_id = correlation_id_ctx.get() or f"req_{uuid.uuid4().hex[:12]}"
		self.log.info("ocr", "Processing with client-side extracted text (Tesseract)", {
			"fileName": data.filename, "textLength": len(data.extracted_text), "confidence": data.confidence,
			"pages": data.pages, "llmProvider": data.llm_provider, "ocrProvider": "tesseract",
		}, request_id=request_id)

		document = self.remote.insert("documents", _new_row(Document,
			filename=data.filename,
			file_size=data.file_size,
			file_url=LOCAL_TEXT_URL,
			status="processing",
			user_id=user_id,
		))
		job = self.remote.insert("processing_jobs", _new_row(ProcessingJob,
			document_id=document["id"],
			structure_template=structure_template,
			ocr_provider="tesseract",
			llm_provider=data.llm_provider,
			extracted_text=data.extracted_text,
			status=JobStatus.llm_processing.value,
			request_id=request_id,
			provider_metadata={"confidence": data.confidence, "pages": data.pages, "provider": "tesseract"},
			page_count=data.pages,
		))
		try:
			llm = self.llm_router.generate(
				data.extracted_text,
				structure_template,
				data.llm_provider,
				model=data.llm_model,
				timeout=self.llm_timeout_seconds,
				job_id=job["id"],
			)
			self._update_job(
				job["id"],
				status=JobStatus.completed.value,
				structured_output=llm.structured_output,
				processing_time_ms=llm.processing_time,
			)
			self._set_document_status(document["id"], "completed")
			self.log.info("llm", "LLM processing completed with Tesseract text", {
				"processingTime": llm.processing_time,
				"outputKeys": list(llm.structured_output.keys()) if isinstance(llm.structured_output, dict) else [],
			}, job_id=job["id"], document_id=document["id"], request_id=request_id)
		except Exception as e:
			self._fail(job, "llm", data.llm_provider, e, filename=data.filename)
		return self.get_job(job["id"])

	def _fail(self, job: Dict[str, Any], stage: str, provider: str, error: Exception, filename: Optional[str]) -> None:
		message = str(error) or type(error).__name__
		details = {
			"error": type(error).__name__,
			"stage": stage,
			"provider": provider,
			"timestamp": utc_timestamp(),
			"request_id": job.get("request_id"),
		}
		self.log.critical("system", "Document processing failed", error, {
			"errorMessage": message, "stage": stage, "provider": provider, "fileName": filename,
		}, job_id=job["id"], document_id=job["document_id"], request_id=job.get("request_id"))
		try:
			current = self.get_job(job["id"])
			if current and current["status"] not in TERMINAL_STATUSES:
				self._update_job(job["id"], status=JobStatus.failed.value, error_message=message, error_details=details)
			self._set_document_status(job["document_id"], "failed")
		except Exception:
			logger.error("job_failure_not_recorded", extra={"job_id": job["id"]}, exc_info=True)
