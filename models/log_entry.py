from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class Category(str, Enum):
    ocr = "ocr"
    llm = "llm"
    upload = "upload"
    database = "database"
    api = "api"
    system = "system"
    auth = "auth"
    storage = "storage"


SEVERITIES = [s.value for s in Severity]
CATEGORIES = [c.value for c in Category]


def utc_timestamp() -> str:
    return datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class LogEntry(BaseModel):
    # severity/category stay plain strings locally; coercion happens on the way out
    id: Optional[int] = None
    timestamp: str = Field(default_factory=utc_timestamp)
    severity: str = Severity.info.value
    category: str = Category.system.value
    message: str
    context: Optional[Dict[str, Any]] = None
    error_details: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    job_id: Optional[str] = None
    document_id: Optional[str] = None
    request_id: Optional[str] = None
    synced: int = 0


class LogIn(BaseModel):
    severity: str = Severity.info.value
    category: str = Category.system.value
    message: str = Field(..., min_length=1)
    context: Optional[Dict[str, Any]] = None
    error_details: Optional[Dict[str, Any]] = None
    job_id: Optional[str] = None
    document_id: Optional[str] = None
