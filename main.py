import os
from contextlib import asynccontextmanager
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers.auth import router as auth_router
from routers.documents import router as documents_router, jobs_router
from routers.templates import router as templates_router
from routers.pipelines import router as pipelines_router, executions_router
from routers.logs import router as logs_router
from routers.admin import router as admin_router
from services.container import AppServices, set_services
from utils.logging_config import init_logging, install_request_logging
from utils.exception_handlers import install_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = AppServices()
    services.initialize()
    app.state.services = services
    set_services(services)
    services.app_logger.info("system", "Application started", {"pid": os.getpid()})
    try:
        yield
    finally:
        services.shutdown()
        set_services(None)


app = FastAPI(
    title="Document Extraction API",
    description="Backend API for OCR + LLM structured extraction, extraction pipelines, and application log monitoring.",
    version="1.0.0",
    lifespan=lifespan,
)

# Initialize logging and request middleware
init_logging()
install_request_logging(app)
install_exception_handlers(app)

app.include_router(auth_router)
app.include_router(documents_router)
app.include_router(jobs_router)
app.include_router(templates_router)
app.include_router(pipelines_router)
app.include_router(executions_router)
app.include_router(logs_router)
app.include_router(admin_router)

# CORS settings (adjust origins as needed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"message": "Welcome to the Document Extraction API"}
