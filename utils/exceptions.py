"""
Exceptions raised by the processing services and mapped to HTTP responses
in utils/exception_handlers.py.
"""
from typing import Optional


class ProcessingError(Exception):
	"""Base exception for all document processing errors"""
	status_code = 400


class UnsupportedProviderError(ProcessingError):
	"""Raised when a provider name is not in the registry"""


class ProviderInputError(ProcessingError):
	"""Raised when the input violates a provider constraint (format, size)"""


class ProviderError(ProcessingError):
	"""Raised when an upstream OCR/LLM API fails or returns something unusable"""
	status_code = 502

	def __init__(self, message: str, provider: Optional[str] = None, status: Optional[int] = None):
		super().__init__(message)
		self.provider = provider
		self.status = status


class LLMTimeoutError(ProviderError):
	"""Raised when an LLM call exceeds its hard timeout"""
	status_code = 504


class PipelineError(ProcessingError):
	"""Raised when a pipeline operator fails; the execution is recorded as failed"""

	def __init__(self, message: str, execution_id: Optional[str] = None):
		super().__init__(message)
		self.execution_id = execution_id


class PredicateSyntaxError(ProcessingError):
	"""Raised when a filter condition cannot be parsed"""


class RemoteStoreError(Exception):
	"""Error reported by the remote store. `code` follows Postgres SQLSTATE codes."""

	def __init__(self, message: str, code: Optional[str] = None):
		super().__init__(message)
		self.code = code


class RemoteUnavailableError(RemoteStoreError):
	"""The remote store could not be reached at all"""
