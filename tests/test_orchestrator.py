import os
from unittest.mock import MagicMock, patch

import pytest

from models.document import Document, ExtractedTextIn, ProcessingJob
from models.provider import LLMResult, OCRMetadata, OCRResult
from providers.ocr import DEMO_MARKER, PAGE_BREAK
from services.container import AppServices
from services.remote_store import InMemoryRemoteStore
from utils.config import Settings
from utils.exceptions import ProcessingError, ProviderError, UnsupportedProviderError

TEMPLATE = {"type": "object", "properties": {"vendor": {"type": "string"}, "total": {"type": "number"}}}


@pytest.fixture
def services(temp_dirs):
	settings = Settings(
		state_dir=temp_dirs["state"],
		offline_log_db=os.path.join(temp_dirs["state"], "logs.db"),
		upload_dir=temp_dirs["uploads"],
		log_sync_enabled=False,
	)
	s = AppServices(settings, remote=InMemoryRemoteStore())
	s.initialize()
	yield s
	s.shutdown()


def _ocr_result(text, provider="google-vision", confidence=90, pages=1):
	return OCRResult(text=text, metadata=OCRMetadata(provider=provider, confidence=confidence, pages=pages, language="en"))


def test_demo_happy_path(services):
	processor = services.processor
	document, job = processor.create_job("invoice.pdf", b"%PDF-1.4 demo", "application/pdf", TEMPLATE, "google-vision", "openai", user_id="u1")
	assert job["status"] == "pending"
	assert document["status"] == "processing"
	assert services.storage.read(document["file_url"]) == b"%PDF-1.4 demo"

	finished = processor.process_job(job["id"])

	assert finished["status"] == "completed"
	assert DEMO_MARKER in finished["extracted_text"]
	assert finished["structured_output"]["vendor"] == ""
	assert "_demo_note" in finished["structured_output"]
	assert finished["provider_metadata"]["provider"] == "google-vision"
	assert finished["page_count"] == 1
	assert finished["processing_time_ms"] >= 0
	assert processor.get_document(document["id"])["status"] == "completed"

	logged = [row["message"] for row in services.remote.select("logs", {"job_id": job["id"]})]
	assert "Document processing completed successfully" in logged


def test_new_rows_carry_every_column(services):
	document, job = services.processor.create_job("invoice.pdf", b"%PDF", "application/pdf", TEMPLATE, "google-vision", "openai")

	assert set(ProcessingJob.model_fields) <= set(job)
	for column in ("extracted_text", "structured_output", "provider_metadata", "page_count", "processing_time_ms", "error_message", "error_details", "updated_at"):
		assert job[column] is None
	assert set(Document.model_fields) <= set(document)
	assert document["content_type"] == "application/pdf"
	assert services.remote.get("processing_jobs", job["id"])["structured_output"] is None


def test_failing_ocr_fails_job_without_llm_call(services):
	processor = services.processor
	processor.ocr_router = MagicMock()
	processor.ocr_router.process.side_effect = ProviderError("Google Vision API error: Forbidden - quota", provider="google-vision", status=403)
	processor.llm_router = MagicMock()
	document, job = processor.create_job("scan.pdf", b"%PDF", "application/pdf", TEMPLATE, "google-vision", "openai")

	failed = processor.process_job(job["id"])

	processor.llm_router.generate.assert_not_called()
	assert failed["status"] == "failed"
	assert failed["error_message"] == "Google Vision API error: Forbidden - quota"
	assert failed["error_details"]["stage"] == "ocr"
	assert failed["error_details"]["provider"] == "google-vision"
	assert failed["error_details"]["error"] == "ProviderError"
	assert failed["error_details"]["request_id"] == job["request_id"]
	assert failed["structured_output"] is None
	assert processor.get_document(document["id"])["status"] == "failed"

	[critical] = services.remote.select("logs", {"severity": "critical"})
	assert critical["job_id"] == job["id"]
	assert critical["context"]["stage"] == "ocr"


def test_failing_llm_keeps_extracted_text(services):
	processor = services.processor
	processor.llm_router = MagicMock()
	processor.llm_router.generate.side_effect = ProviderError("OpenAI API error: Bad Gateway", provider="openai", status=502)
	_, job = processor.create_job("scan.pdf", b"%PDF", "application/pdf", TEMPLATE, "google-vision", "openai")

	failed = processor.process_job(job["id"])

	assert failed["status"] == "failed"
	assert failed["error_details"]["stage"] == "llm"
	assert failed["error_details"]["provider"] == "openai"
	assert DEMO_MARKER in failed["extracted_text"]


def test_only_pending_jobs_are_processed(services):
	processor = services.processor
	_, job = processor.create_job("a.png", b"\x89PNG", "image/png", TEMPLATE, "google-vision", "openai")
	processor.process_job(job["id"])
	processor.ocr_router = MagicMock()

	again = processor.process_job(job["id"])

	processor.ocr_router.process.assert_not_called()
	assert again["status"] == "completed"
	assert processor.process_job("00000000-0000-0000-0000-000000000000") is None


def test_vision_provider_reads_pdf_page_by_page(services):
	processor = services.processor
	processor.ocr_router = MagicMock()
	processor.ocr_router.process.side_effect = [
		_ocr_result("page one", provider="mistral", confidence=90),
		_ocr_result("page two", provider="mistral", confidence=80),
	]
	_, job = processor.create_job("exam.pdf", b"%PDF", "application/pdf", TEMPLATE, "mistral", "openai")

	with patch("services.orchestrator.pdf_to_png_pages", return_value=[b"png-1", b"png-2"]):
		finished = processor.process_job(job["id"], vision_model="pixtral-large-latest")

	assert finished["status"] == "completed"
	assert finished["extracted_text"] == "page one" + PAGE_BREAK + "page two"
	assert finished["page_count"] == 2
	assert finished["provider_metadata"]["confidence"] == 85
	calls = processor.ocr_router.process.call_args_list
	assert [c.args[0] for c in calls] == [b"png-1", b"png-2"]
	assert all(c.args[1] == "image/png" for c in calls)
	assert all(c.args[3] == {"model": "pixtral-large-latest"} for c in calls)
	assert services.storage.read(f"documents/{job['id']}/exam-page-2.png") == b"png-2"


def test_failing_page_names_the_page(services):
	processor = services.processor
	processor.ocr_router = MagicMock()
	processor.ocr_router.process.side_effect = [_ocr_result("ok", provider="openai-vision"), ProviderError("blurry")]
	_, job = processor.create_job("exam.pdf", b"%PDF", "application/pdf", TEMPLATE, "openai-vision", "openai")

	with patch("services.orchestrator.pdf_to_png_pages", return_value=[b"1", b"2", b"3"]):
		failed = processor.process_job(job["id"])

	assert failed["status"] == "failed"
	assert failed["error_message"] == "openai-vision OCR failed for page 2: blurry"
	assert processor.ocr_router.process.call_count == 2


def test_extracted_text_uses_llm_timeout(services):
	processor = services.processor
	processor.llm_router = MagicMock()
	processor.llm_router.generate.return_value = LLMResult(structured_output={"total": 12}, processing_time=40, provider="openai")
	data = ExtractedTextIn(filename="receipt.jpg", file_size=2048, extracted_text="TOTAL 12.00", confidence=88.5, pages=1)

	job = processor.process_extracted_text(data, TEMPLATE, user_id="u1")

	kwargs = processor.llm_router.generate.call_args.kwargs
	assert kwargs["timeout"] == 300
	assert job["status"] == "completed"
	assert job["ocr_provider"] == "tesseract"
	assert job["structured_output"] == {"total": 12}
	assert job["provider_metadata"]["confidence"] == 88.5
	document = processor.get_document(job["document_id"])
	assert document["file_url"] == "tesseract://local"
	assert document["status"] == "completed"

	with pytest.raises(ProcessingError):
		processor.reprocess(document["id"])


def test_reprocess_creates_new_current_job(services):
	processor = services.processor
	processor.ocr_router = MagicMock()
	processor.ocr_router.process.side_effect = ProviderError("down")
	document, first = processor.create_job("a.pdf", b"%PDF", "application/pdf", TEMPLATE, "google-vision", "openai")
	processor.process_job(first["id"])
	assert processor.get_document(document["id"])["status"] == "failed"

	retry = processor.reprocess(document["id"], ocr_provider="aws-textract")

	assert retry["id"] != first["id"]
	assert retry["status"] == "pending"
	assert retry["ocr_provider"] == "aws-textract"
	assert retry["llm_provider"] == "openai"
	assert retry["structure_template"] == TEMPLATE
	assert processor.current_job(document["id"])["id"] == retry["id"]
	assert processor.get_job(first["id"])["status"] == "failed"
	assert processor.get_document(document["id"])["status"] == "processing"


def test_unknown_provider_is_rejected_before_storing(services):
	with pytest.raises(UnsupportedProviderError):
		services.processor.create_job("a.pdf", b"%PDF", "application/pdf", TEMPLATE, "google-vision", "gpt-2")
	assert services.remote.select("documents") == []
