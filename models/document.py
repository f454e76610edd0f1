from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class JobStatus(str, Enum):
    pending = "pending"
    ocr_processing = "ocr_processing"
    llm_processing = "llm_processing"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = {JobStatus.completed.value, JobStatus.failed.value}


class Document(BaseModel):
    id: str
    filename: str
    file_size: int
    file_url: str
    content_type: Optional[str] = None
    status: str  # e.g., "processing", "completed", "failed"
    user_id: Optional[str] = None
    created_at: Optional[str] = None


class ProcessingJob(BaseModel):
    id: str
    document_id: str
    structure_template: Any
    ocr_provider: str
    llm_provider: str
    status: str = JobStatus.pending.value
    extracted_text: Optional[str] = None
    structured_output: Any = None
    provider_metadata: Optional[Dict[str, Any]] = None
    page_count: Optional[int] = None
    processing_time_ms: Optional[int] = None
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ExtractedTextIn(BaseModel):
    filename: str
    file_size: int = 0
    extracted_text: str
    confidence: float = 0
    pages: int = 1
    template_id: Optional[str] = None
    structure_template: Optional[Dict[str, Any]] = None
    llm_provider: str = "openai"
    llm_model: Optional[str] = None


class ReprocessIn(BaseModel):
    ocr_provider: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    vision_model: Optional[str] = None
