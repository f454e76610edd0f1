import logging
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict

from utils.exceptions import PipelineError, ProcessingError, RemoteStoreError, RemoteUnavailableError
from utils.logging_config import correlation_id_ctx
from utils.response import api_response

logger = logging.getLogger("api.errors")


def install_exception_handlers(app: FastAPI) -> None:
	@app.exception_handler(HTTPException)
	async def http_exception_handler(request: Request, exc: HTTPException):
		# Do not log sensitive details; rely on request middleware for stack traces when needed
		logger.warning(
			"http_exception",
			extra={
				"path": request.url.path,
				"method": request.method,
				"status_code": exc.status_code,
			}
		)
		return api_response(data=None, message=str(exc.detail or "HTTP error"), status_code=exc.status_code)

	@app.exception_handler(RequestValidationError)
	async def validation_exception_handler(request: Request, exc: RequestValidationError):
		errors = exc.errors()
		logger.warning(
			"validation_error",
			extra={
				"path": request.url.path,
				"method": request.method,
				"status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
				"error_count": len(errors),
			}
		)
		content: Dict[str, Any] = {"errors": jsonable_encoder(errors)}
		return JSONResponse(
			status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
			content={
				"data": content,
				"message": "Validation error",
				"status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
				"request_id": correlation_id_ctx.get(),
			},
		)

	@app.exception_handler(ProcessingError)
	async def processing_exception_handler(request: Request, exc: ProcessingError):
		logger.warning(
			"processing_error",
			extra={
				"path": request.url.path,
				"method": request.method,
				"status_code": exc.status_code,
				"error_type": type(exc).__name__,
				"error": str(exc),
			}
		)
		data = {"execution_id": exc.execution_id} if isinstance(exc, PipelineError) and exc.execution_id else None
		return api_response(data=data, message=str(exc), status_code=exc.status_code)

	@app.exception_handler(RemoteStoreError)
	async def remote_store_exception_handler(request: Request, exc: RemoteStoreError):
		code = status.HTTP_503_SERVICE_UNAVAILABLE if isinstance(exc, RemoteUnavailableError) else status.HTTP_502_BAD_GATEWAY
		logger.error(
			"remote_store_error",
			extra={
				"path": request.url.path,
				"method": request.method,
				"status_code": code,
				"code": exc.code,
				"error": str(exc),
			}
		)
		return api_response(data=None, message="Storage backend error", status_code=code)

	@app.exception_handler(Exception)
	async def generic_exception_handler(request: Request, exc: Exception):
		# Do not expose internal details to clients
		logger.error(
			"unhandled_exception",
			exc_info=True,
			extra={
				"path": request.url.path,
				"method": request.method,
				"status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
			}
		)
		services = getattr(request.app.state, "services", None)
		if services is not None:
			services.app_logger.critical("api", "Unhandled exception", exc, {"path": request.url.path, "method": request.method})
		return api_response(data=None, message="Internal server error", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
