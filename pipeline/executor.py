"""
Sequential executor for declarative pipelines.

Operators run strictly in declared order over a list of items:

- map:    one LLM call per item (`prompt`, `output_schema`, `model`, `provider`);
          a dict result is merged onto the item
- filter: keeps the items for which `filter_condition` holds (see pipeline.predicate)
- unnest: replaces each item by one item per element of its `unnest_key` list
- reduce: groups items by `reduce_key` and folds each group with one LLM call
          (`fold_prompt`)

Every run is recorded in `docetl_executions`. A failing operator aborts the
run; the items produced so far are stored with status `failed` and
PipelineError is raised.
"""
import json
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from models.log_entry import utc_timestamp
from models.pipeline import Execution
from pipeline.predicate import compile_predicate
from utils.exceptions import PipelineError

logger = logging.getLogger("pipeline.executor")

EXECUTIONS = "docetl_executions"
DEFAULT_FOLD_SCHEMA = {"type": "object", "properties": {"summary": {"type": "string"}}}

REQUIRED_CONFIG = {
	"map": ("prompt",),
	"filter": ("filter_condition",),
	"unnest": ("unnest_key",),
	"reduce": ("reduce_key", "fold_prompt"),
}
OPERATOR_TYPES = tuple(REQUIRED_CONFIG)


def validate_operators(operators: List[Dict[str, Any]]) -> None:
	"""Reject unknown operator types, missing settings and unparsable filter conditions."""
	if not operators:
		raise PipelineError("Pipeline has no operators")
	for position, op in enumerate(operators, start=1):
		kind = op.get("type")
		label = op.get("name") or f"operator {position}"
		if kind not in REQUIRED_CONFIG:
			raise PipelineError(f"{label}: unknown operator type {kind!r}; expected one of {', '.join(OPERATOR_TYPES)}")
		config = op.get("config") or {}
		missing = [key for key in REQUIRED_CONFIG[kind] if not config.get(key)]
		if missing:
			raise PipelineError(f"{label}: missing {', '.join(missing)}")
		if kind == "filter":
			compile_predicate(config["filter_condition"])


def _as_text(item: Any) -> str:
	return item if isinstance(item, str) else json.dumps(item, ensure_ascii=False, default=str)


def _group_key(value: Any) -> Any:
	try:
		hash(value)
		return value
	except TypeError:
		return json.dumps(value, sort_keys=True, default=str)


class PipelineExecutor:
	def __init__(self, remote, llm_router, app_logger=None, default_provider: str = "openai"):
		self.remote = remote
		self.llm_router = llm_router
		self.app_logger = app_logger
		self.default_provider = default_provider
		self._operators: Dict[str, Callable[[List[Any], Dict[str, Any]], List[Any]]] = {
			"map": self._map,
			"filter": self._filter,
			"unnest": self._unnest,
			"reduce": self._reduce,
		}

	def _llm(self, text: str, schema: Any, config: Dict[str, Any], instructions: str):
		result = self.llm_router.generate(
			text,
			schema,
			config.get("provider") or self.default_provider,
			model=config.get("model"),
			instructions=instructions,
		)
		return result.structured_output

	def _map(self, items, config):
		results = []
		for item in items:
			output = self._llm(_as_text(item), config.get("output_schema") or {}, config, config["prompt"])
			base = item if isinstance(item, dict) else {"input": item}
			if isinstance(output, dict):
				results.append({**base, **output})
			else:
				results.append({**base, "output": output})
		return results

	def _filter(self, items, config):
		predicate = compile_predicate(config["filter_condition"])
		return [item for item in items if predicate(item)]

	def _unnest(self, items, config):
		key = config["unnest_key"]
		results = []
		for item in items:
			if not isinstance(item, dict):
				raise PipelineError(f"Cannot unnest {key!r}: item is not an object")
			values = item.get(key)
			if values is None:
				continue
			if not isinstance(values, list):
				raise PipelineError(f"Cannot unnest {key!r}: expected a list, got {type(values).__name__}")
			parent = {k: v for k, v in item.items() if k != key}
			for value in values:
				results.append({**parent, **value} if isinstance(value, dict) else {**parent, key: value})
		return results

	def _reduce(self, items, config):
		key = config["reduce_key"]
		groups: Dict[Any, Dict[str, Any]] = {}
		for item in items:
			value = item.get(key) if isinstance(item, dict) else None
			for group_value in (value if isinstance(value, list) else [value]):
				group = groups.setdefault(_group_key(group_value), {"value": group_value, "items": []})
				group["items"].append(item)

		results = []
		for group in groups.values():
			output = self._llm(
				_as_text(group["items"]),
				config.get("output_schema") or DEFAULT_FOLD_SCHEMA,
				config,
				f"{config['fold_prompt']}\n\nAll items below share {key} = {_as_text(group['value'])}.",
			)
			result = {key: group["value"], "count": len(group["items"])}
			if isinstance(output, dict):
				result.update(output)
			else:
				result["output"] = output
			results.append(result)
		return results

	def execute(self, pipeline: Dict[str, Any], input_data: List[Any], user_id: Optional[str] = None) -> Dict[str, Any]:
		operators = (pipeline.get("config") or {}).get("operators") or []
		record = Execution(id=str(uuid.uuid4()), pipeline_id=pipeline["id"], status="running", input_data=input_data, user_id=user_id)
		execution = self.remote.insert(EXECUTIONS, record.model_dump(exclude={"created_at"}))
		logger.info("pipeline_execution_started", extra={"execution_id": execution["id"], "pipeline_id": pipeline["id"], "operators": len(operators), "items": len(input_data)})

		items = list(input_data)
		op_metrics = []
		run_start = time.monotonic()
		for op in operators:
			kind, name = op.get("type"), op.get("name") or op.get("type")
			op_start = time.monotonic()
			input_count = len(items)
			try:
				if kind not in self._operators:
					raise PipelineError(f"Unknown operator type: {kind}")
				items = self._operators[kind](items, op.get("config") or {})
			except Exception as e:
				raise self._record_failure(execution, pipeline, op, e, items, op_metrics, input_data, run_start) from e
			op_metrics.append({
				"id": op.get("id"),
				"name": name,
				"type": kind,
				"input_count": input_count,
				"output_count": len(items),
				"duration_ms": int((time.monotonic() - op_start) * 1000),
			})
			logger.info("pipeline_operator_completed", extra={"execution_id": execution["id"], "operator": name, "type": kind, "output_count": len(items)})

		metrics = {
			"operators_executed": len(op_metrics),
			"total_duration_ms": int((time.monotonic() - run_start) * 1000),
			"input_count": len(input_data),
			"output_count": len(items),
			"operators": op_metrics,
		}
		updated = self.remote.update(EXECUTIONS, execution["id"], {
			"status": "completed",
			"output_data": items,
			"metrics": metrics,
			"completed_at": utc_timestamp(),
		})
		logger.info("pipeline_execution_completed", extra={"execution_id": execution["id"], **{k: v for k, v in metrics.items() if k != "operators"}})
		return updated

	def _record_failure(self, execution, pipeline, op, error, items, op_metrics, input_data, run_start) -> PipelineError:
		name = op.get("name") or op.get("type")
		message = f"Operator '{name}' ({op.get('type')}) failed: {error}"
		metrics = {
			"operators_executed": len(op_metrics),
			"total_duration_ms": int((time.monotonic() - run_start) * 1000),
			"input_count": len(input_data),
			"output_count": len(items),
			"operators": op_metrics,
			"failed_operator": name,
		}
		self.remote.update(EXECUTIONS, execution["id"], {
			"status": "failed",
			"output_data": items,
			"metrics": metrics,
			"error_message": message,
			"completed_at": utc_timestamp(),
		})
		if self.app_logger is not None:
			self.app_logger.error("system", "Pipeline execution failed", error, {
				"executionId": execution["id"], "pipelineId": pipeline["id"], "operator": name,
			})
		else:
			logger.error("pipeline_execution_failed", extra={"execution_id": execution["id"], "operator": name}, exc_info=error)
		return PipelineError(message, execution_id=execution["id"])
