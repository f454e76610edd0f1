from pydantic import BaseModel
from typing import Any, Optional

class APIResponse(BaseModel):
    data: Any
    message: str
    status_code: int
    # Same value as the request_id on log entries written while serving the request
    request_id: Optional[str] = None
