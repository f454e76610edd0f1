from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Operator(BaseModel):
    id: Optional[str] = None
    name: str
    type: str  # map, filter, unnest, reduce
    config: Dict[str, Any] = Field(default_factory=dict)


class PipelineConfig(BaseModel):
    operators: List[Operator] = Field(default_factory=list)


class PipelineIn(BaseModel):
    name: str
    description: Optional[str] = None
    config: PipelineConfig
    status: str = "active"


class Pipeline(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    config: PipelineConfig
    status: str = "active"
    is_active: bool = True
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ExecuteIn(BaseModel):
    input_data: List[Any]


class Execution(BaseModel):
    id: str
    pipeline_id: str
    status: str  # running, completed, failed
    input_data: Any = None
    output_data: Any = None
    metrics: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None
