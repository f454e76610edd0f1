from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from models.response import APIResponse
from utils.logging_config import correlation_id_ctx


def api_response(data=None, message="Success", status_code=200):
	body = APIResponse(data=data, message=message, status_code=status_code, request_id=correlation_id_ctx.get())
	return JSONResponse(status_code=status_code, content=jsonable_encoder(body))
