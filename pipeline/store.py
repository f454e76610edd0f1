import logging
import uuid
from typing import Any, Dict, List, Optional

from models.log_entry import utc_timestamp
from models.pipeline import Pipeline, PipelineIn
from pipeline.executor import EXECUTIONS, validate_operators
from pipeline.templates import get_pipeline_template

logger = logging.getLogger("pipeline.store")

PIPELINES = "docetl_pipelines"


class PipelineStore:
	"""CRUD over user-owned pipelines and their execution records."""

	def __init__(self, remote):
		self.remote = remote

	def list_pipelines(self, user_id: str) -> List[Dict[str, Any]]:
		return self.remote.select(PIPELINES, {"user_id": user_id}, order_by="created_at", descending=True)

	def get_pipeline(self, pipeline_id: str, user_id: str) -> Optional[Dict[str, Any]]:
		row = self.remote.get(PIPELINES, pipeline_id)
		return row if row and row.get("user_id") == user_id else None

	def create_pipeline(self, data: PipelineIn, user_id: str) -> Dict[str, Any]:
		config = data.config.model_dump()
		validate_operators(config["operators"])
		pipeline = Pipeline(
			id=str(uuid.uuid4()),
			name=data.name,
			description=data.description,
			config=data.config,
			status=data.status,
			user_id=user_id,
			updated_at=utc_timestamp(),
		)
		row = self.remote.insert(PIPELINES, pipeline.model_dump(exclude={"created_at"}))
		logger.info("pipeline_created", extra={"pipeline_id": row["id"], "operators": len(config["operators"])})
		return row

	def create_from_template(self, kind: str, user_id: str) -> Dict[str, Any]:
		return self.create_pipeline(PipelineIn(**get_pipeline_template(kind)), user_id)

	def update_pipeline(self, pipeline_id: str, data: PipelineIn, user_id: str) -> Optional[Dict[str, Any]]:
		if self.get_pipeline(pipeline_id, user_id) is None:
			return None
		config = data.config.model_dump()
		validate_operators(config["operators"])
		row = self.remote.update(PIPELINES, pipeline_id, {
			"name": data.name,
			"description": data.description,
			"config": config,
			"status": data.status,
			"updated_at": utc_timestamp(),
		})
		logger.info("pipeline_updated", extra={"pipeline_id": pipeline_id})
		return row

	def delete_pipeline(self, pipeline_id: str, user_id: str) -> bool:
		if self.get_pipeline(pipeline_id, user_id) is None:
			return False
		return self.remote.delete(PIPELINES, pipeline_id)

	def list_executions(self, pipeline_id: str) -> List[Dict[str, Any]]:
		return self.remote.select(EXECUTIONS, {"pipeline_id": pipeline_id}, order_by="created_at", descending=True)

	def get_execution(self, execution_id: str, user_id: str) -> Optional[Dict[str, Any]]:
		row = self.remote.get(EXECUTIONS, execution_id)
		return row if row and row.get("user_id") == user_id else None
