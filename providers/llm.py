"""
LLM providers that turn extracted text into structured JSON shaped by a
schema-like template, and the router that dispatches to them.

Output is best effort: whatever JSON the model returns is passed through
unvalidated, and a reply that is not JSON at all is passed through as the
raw string.
"""
import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from models.provider import HealthCheckResult, LLMResult
from providers.ocr import DEMO_MARKER
from providers.registry import get_llm_provider, register_llm_provider
from services.provider_health import DEGRADED, DOWN, HEALTHY
from utils.exceptions import LLMTimeoutError, ProviderError

logger = logging.getLogger("providers.llm")

SYSTEM_PROMPT = (
	"You are a data extraction assistant. Extract information from the provided text and return it "
	"as JSON that follows the given structure exactly. Use null for fields that cannot be found. "
	"Return only the JSON object, with no explanations."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def build_prompt(text: str, schema_template: Any, instructions: Optional[str] = None) -> str:
	parts = []
	if instructions:
		parts.append(instructions)
	parts.append("Structure:\n" + json.dumps(schema_template, indent=2, ensure_ascii=False))
	parts.append("Text:\n" + text)
	return "\n\n".join(parts)


def parse_structured_output(content: str) -> Any:
	cleaned = content.strip()
	match = _FENCE_RE.match(cleaned)
	if match:
		cleaned = match.group(1)
	try:
		return json.loads(cleaned)
	except ValueError:
		logger.warning("llm_output_not_json", extra={"length": len(content)})
		return content


def demo_value(schema: Any) -> Any:
	"""Placeholder value for a JSON-schema node or a shorthand type name."""
	if isinstance(schema, str):
		schema = {"type": schema}
	if not isinstance(schema, dict):
		return None
	kind = schema.get("type")
	if kind == "object" or (kind is None and "properties" in schema):
		return {key: demo_value(sub) for key, sub in (schema.get("properties") or {}).items()}
	if kind == "array":
		return []
	if kind in ("number", "integer"):
		return 0
	if kind == "boolean":
		return False
	if kind == "string":
		return ""
	if kind is None:
		# shorthand mapping like {"title": "string", "topics": "array"}
		return {key: demo_value(sub) for key, sub in schema.items()}
	return None


class LLMProvider(ABC):
	name = ""
	label = ""
	env_key = ""
	endpoint = ""
	default_model = ""

	def api_key(self) -> Optional[str]:
		return os.getenv(self.env_key)

	def demo_output(self, schema_template: Any) -> Dict[str, Any]:
		output = demo_value(schema_template)
		if not isinstance(output, dict):
			output = {}
		output["_demo_note"] = (
			f"{DEMO_MARKER} {self.label} API key not configured. In production with a valid API key, "
			"this would contain data extracted from your document."
		)
		return output

	@abstractmethod
	def request(self, api_key: str, model: str, prompt: str) -> Dict[str, Any]:
		"""Return keyword arguments for requests.post."""

	@abstractmethod
	def content_of(self, result: Dict[str, Any]) -> str:
		pass

	def generate(self, text: str, schema_template: Any, model: Optional[str] = None, timeout: Optional[float] = None, instructions: Optional[str] = None) -> Any:
		key = self.api_key()
		if not key:
			return self.demo_output(schema_template)
		prompt = build_prompt(text, schema_template, instructions)
		try:
			response = requests.post(self.endpoint, timeout=timeout, **self.request(key, model or self.default_model, prompt))
		except requests.Timeout:
			minutes = round((timeout or 0) / 60, 1)
			raise LLMTimeoutError(
				f"Request timed out after {minutes:g} minutes. The LLM service may be overloaded or unavailable. Please try again later.",
				provider=self.name,
			)
		except requests.RequestException as e:
			raise ProviderError(f"{self.label} request failed: {e}", provider=self.name)
		if not response.ok:
			raise ProviderError(
				f"{self.label} API error: {response.reason} - {response.text[:200]}",
				provider=self.name,
				status=response.status_code,
			)
		try:
			result = response.json()
		except ValueError:
			raise ProviderError(f"{self.label}: Invalid JSON response from API", provider=self.name)
		content = self.content_of(result)
		if not content:
			raise ProviderError(f"{self.label}: Empty response from model", provider=self.name)
		return parse_structured_output(content)


class _ChatCompletionsProvider(LLMProvider):
	def request(self, api_key, model, prompt):
		return {
			"headers": {"Authorization": f"Bearer {api_key}"},
			"json": {
				"model": model,
				"messages": [
					{"role": "system", "content": SYSTEM_PROMPT},
					{"role": "user", "content": prompt},
				],
				"temperature": 0,
				"response_format": {"type": "json_object"},
			},
		}

	def content_of(self, result):
		return ((result.get("choices") or [{}])[0].get("message") or {}).get("content") or ""


@register_llm_provider
class OpenAIProvider(_ChatCompletionsProvider):
	name = "openai"
	label = "OpenAI"
	env_key = "OPENAI_API_KEY"
	endpoint = "https://api.openai.com/v1/chat/completions"
	default_model = "gpt-4o-mini"


@register_llm_provider
class MistralLargeProvider(_ChatCompletionsProvider):
	name = "mistral-large"
	label = "Mistral Large"
	env_key = "MISTRAL_API_KEY"
	endpoint = "https://api.mistral.ai/v1/chat/completions"
	default_model = "mistral-large-latest"


@register_llm_provider
class AnthropicProvider(LLMProvider):
	name = "anthropic"
	label = "Anthropic"
	env_key = "ANTHROPIC_API_KEY"
	endpoint = "https://api.anthropic.com/v1/messages"
	default_model = "claude-3-5-haiku-latest"

	def request(self, api_key, model, prompt):
		return {
			"headers": {"x-api-key": api_key, "anthropic-version": "2023-06-01"},
			"json": {
				"model": model,
				"max_tokens": 4096,
				"system": SYSTEM_PROMPT,
				"messages": [{"role": "user", "content": prompt}],
				"temperature": 0,
			},
		}

	def content_of(self, result):
		blocks = result.get("content") or []
		return "".join(b.get("text", "") for b in blocks if b.get("type") == "text")


def is_demo_output(output: Any) -> bool:
	return isinstance(output, dict) and "_demo_note" in output


class LLMRouter:
	def __init__(self, health=None, app_logger=None):
		self.health = health
		self.app_logger = app_logger

	def _log(self, method: str, *args, **kwargs) -> None:
		if self.app_logger is not None:
			getattr(self.app_logger, method)(*args, **kwargs)

	def generate(
		self,
		text: str,
		schema_template: Any,
		provider: str,
		model: Optional[str] = None,
		timeout: Optional[float] = None,
		instructions: Optional[str] = None,
		job_id: Optional[str] = None,
	) -> LLMResult:
		impl = get_llm_provider(provider)
		self._log("info", "llm", f"Calling LLM provider: {provider}", {"provider": provider, "model": model, "textLength": len(text or "")}, job_id=job_id)
		start = time.monotonic()
		try:
			output = impl.generate(text, schema_template, model=model, timeout=timeout, instructions=instructions)
		except Exception as e:
			duration = int((time.monotonic() - start) * 1000)
			self._log("error", "llm", f"LLM provider {provider} failed", e, {"provider": provider, "duration_ms": duration}, job_id=job_id)
			if self.health is not None:
				self.health.record(provider, "llm", DOWN, duration, str(e))
			raise

		duration = int((time.monotonic() - start) * 1000)
		demo = is_demo_output(output)
		self._log(
			"info", "llm", "LLM processing completed",
			{"provider": provider, "duration_ms": duration, "hasOutput": output is not None, "isDemoData": demo},
			job_id=job_id,
		)
		if self.health is not None:
			self.health.record(provider, "llm", DEGRADED if demo else HEALTHY, duration, "API key not configured" if demo else None)
		return LLMResult(structured_output=output, processing_time=duration, provider=provider, model=model or impl.default_model)

	def check_health(self, provider: str) -> HealthCheckResult:
		start = time.monotonic()
		try:
			result = self.generate(
				"Test health check",
				{"type": "object", "properties": {"test": {"type": "string"}}},
				provider,
			)
		except Exception as e:
			return HealthCheckResult(provider=provider, type="llm", status=DOWN, response_time=int((time.monotonic() - start) * 1000), error=str(e))
		elapsed = int((time.monotonic() - start) * 1000)
		if is_demo_output(result.structured_output):
			return HealthCheckResult(provider=provider, type="llm", status=DEGRADED, response_time=elapsed, error="API key not configured (demo mode)")
		return HealthCheckResult(provider=provider, type="llm", status=HEALTHY, response_time=elapsed)
