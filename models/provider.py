from typing import Any, Dict, Optional

from pydantic import BaseModel


class OCRMetadata(BaseModel):
    provider: str
    confidence: float = 0
    pages: int = 1
    language: Optional[str] = None


class OCRResult(BaseModel):
    text: str
    metadata: OCRMetadata


class LLMResult(BaseModel):
    structured_output: Any
    processing_time: int
    provider: str
    model: Optional[str] = None


class ProviderHealth(BaseModel):
    provider_name: str
    provider_type: str  # "ocr" or "llm"
    status: str = "unknown"  # healthy, degraded, down, unknown
    last_check: Optional[str] = None
    response_time_ms: Optional[int] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


class HealthCheckResult(BaseModel):
    provider: str
    type: str
    status: str
    response_time: int
    error: Optional[str] = None


class TemplateIn(BaseModel):
    name: str
    description: Optional[str] = None
    template_schema: Dict[str, Any]
    is_public: bool = False
