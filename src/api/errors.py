"""Map typed errors onto HTTP responses.

Execution errors answer with {code, message, user_message}; technical
details are only included when the request asks for them with
?include_details=true.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from src.executor.errors import (
    ErrorCode,
    ExecutionBaseError,
    get_user_friendly_message,
    parse_error,
)
from src.persistence.db import StorageError

logger = logging.getLogger(__name__)

STATUS_BY_CODE: dict[str, int] = {
    ErrorCode.AGENT_NOT_FOUND.value: 404,
    ErrorCode.VALIDATION_ERROR.value: 422,
    ErrorCode.AGENT_UNAVAILABLE.value: 503,
    ErrorCode.NETWORK_ERROR.value: 502,
    ErrorCode.WEBHOOK_ERROR.value: 502,
    ErrorCode.EXECUTION_TIMEOUT.value: 504,
    ErrorCode.UNKNOWN_ERROR.value: 500,
}

STORAGE_STATUS_BY_CODE: dict[str, int] = {
    "QUOTA_EXCEEDED": 507,
    "STORAGE_UNAVAILABLE": 503,
    "IMPORT_ERROR": 400,
}


def wants_details(request: Request) -> bool:
    return request.query_params.get("include_details", "").lower() in ("1", "true", "yes")


async def execution_error_handler(request: Request, exc: ExecutionBaseError) -> JSONResponse:
    parsed = parse_error(exc)
    status_code = STATUS_BY_CODE.get(parsed.code, 500)
    if status_code >= 500:
        logger.warning(f"{request.method} {request.url.path} -> {status_code} {parsed.code}: {parsed.message}")

    body = {
        "code": parsed.code,
        "message": parsed.message,
        "user_message": get_user_friendly_message(parsed),
    }
    if wants_details(request):
        body["details"] = parsed.details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    status_code = STORAGE_STATUS_BY_CODE.get(exc.code, 500)
    logger.error(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code, "message": exc.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ExecutionBaseError, execution_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
