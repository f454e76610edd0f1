from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
import os
from dotenv import load_dotenv
from utils.logging_config import init_worker_logging

load_dotenv()

CELERY_BROKER_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

celery_app = Celery(
    "docextract",
    broker=CELERY_BROKER_URL,
    backend=CELERY_BROKER_URL,
    include=["tasks.celery_tasks"]
)

# Eager mode runs tasks inline in the calling process (tests, single-process dev)
celery_app.conf.update(
    task_always_eager=os.getenv("CELERY_TASK_ALWAYS_EAGER", "0").lower() in ("1", "true", "yes"),
    task_eager_propagates=True,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
)


@worker_process_init.connect
def _init_worker_services(**kwargs):
    from services.container import AppServices, set_services

    init_worker_logging()
    services = AppServices()
    # The API process owns the sync monitor; workers only write to the shared offline store
    services.initialize(start_sync=False)
    set_services(services)


@worker_process_shutdown.connect
def _shutdown_worker_services(**kwargs):
    from services.container import get_services, set_services

    try:
        get_services().shutdown()
    except RuntimeError:
        return
    set_services(None)
