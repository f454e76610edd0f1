"""
Explicitly constructed application services.

The API process builds one AppServices in its lifespan and stores it on
`app.state.services`; a Celery worker builds its own on process start. Both
install it with set_services() so task code can reach it.
"""
import logging
import os
from typing import Optional

from pipeline.executor import PipelineExecutor
from pipeline.store import PipelineStore
from providers.llm import LLMRouter
from providers.ocr import OCRRouter
from services.app_logger import AppLogger
from services.file_storage import LocalFileStorage
from services.log_analytics import LogAnalytics
from services.log_sync import LogSyncService
from services.offline_log_store import OfflineLogStore
from services.orchestrator import DocumentProcessor
from services.provider_health import ProviderHealthRecorder
from services.remote_store import RemoteStore, build_remote_store
from services.templates import TemplateService
from utils.config import Settings, get_settings
from utils.exceptions import RemoteStoreError

logger = logging.getLogger("services.container")

_current: Optional["AppServices"] = None


class AppServices:
	def __init__(self, settings: Optional[Settings] = None, remote: Optional[RemoteStore] = None):
		self.settings = settings or get_settings()
		s = self.settings
		self.remote = remote or build_remote_store(s.supabase_url, s.supabase_service_role_key)
		self.offline_store = OfflineLogStore(s.offline_log_db)
		self.log_sync = LogSyncService(
			self.offline_store,
			self.remote,
			interval=s.log_sync_interval_seconds,
			batch_size=s.log_sync_batch_size,
			retention_days=s.log_retention_days,
		)
		self.app_logger = AppLogger(self.offline_store, self.remote)
		self.health = ProviderHealthRecorder(self.remote)
		self.ocr = OCRRouter(self.health, self.app_logger)
		self.llm = LLMRouter(self.health, self.app_logger)
		self.storage = LocalFileStorage(s.upload_dir)
		self.processor = DocumentProcessor(
			self.remote, self.storage, self.ocr, self.llm, self.app_logger,
			llm_timeout_seconds=s.llm_timeout_seconds,
		)
		self.templates = TemplateService(self.remote)
		self.pipelines = PipelineStore(self.remote)
		self.executor = PipelineExecutor(self.remote, self.llm, self.app_logger)
		self.analytics = LogAnalytics(self.remote)

	def initialize(self, start_sync: Optional[bool] = None) -> None:
		s = self.settings
		os.makedirs(s.state_dir, exist_ok=True)
		os.makedirs(s.upload_dir, exist_ok=True)
		self.log_sync.initialize(start_monitor=s.log_sync_enabled if start_sync is None else start_sync)
		try:
			self.templates.seed_defaults()
		except RemoteStoreError as e:
			logger.warning("template_seed_skipped", extra={"error": str(e)})
		logger.info("services_initialized", extra={"remote": type(self.remote).__name__, "sync_enabled": s.log_sync_enabled})

	def shutdown(self) -> None:
		self.log_sync.shutdown()
		self.offline_store.shutdown()
		logger.info("services_shutdown")


def set_services(services: Optional[AppServices]) -> None:
	global _current
	_current = services


def get_services() -> AppServices:
	if _current is None:
		raise RuntimeError("Application services are not initialized")
	return _current
