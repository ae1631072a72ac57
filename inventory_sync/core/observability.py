import json
import logging
import time
import traceback
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from inventory_sync.core.api_docs import error_code_for
from inventory_sync.core.config import settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
logger = logging.getLogger("inventory_sync.api")
sync_logger = logging.getLogger("inventory_sync.sync")

# request paths polled by load balancers; logged at DEBUG only
QUIET_PATHS = {"/health", "/ready"}


def setup_observability(level: str | None = None) -> None:
    resolved = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    for target in (logger, sync_logger):
        target.setLevel(resolved)
        if target.handlers:
            continue
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(message)s"))
        target.addHandler(handler)
        target.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def _json_default(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _emit(target: logging.Logger, level: int, payload: dict[str, Any]) -> None:
    if target.isEnabledFor(level):
        target.log(level, json.dumps(payload, default=_json_default))


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured line on the sync logger, tagged with the current request id."""
    payload = {"event": event, "request_id": get_request_id()}
    payload.update(fields)
    _emit(sync_logger, level, payload)


def _request_id_for(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get("x-request-id")
        or get_request_id()
    )


def _error_response(
    *,
    status_code: int,
    request: Request,
    message: str,
    code: str | None = None,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content={
            "error": {
                "code": code or error_code_for(status_code),
                "message": message,
                "request_id": _request_id_for(request),
                "path": request.url.path,
                "details": details,
            }
        },
    )


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    token = request_id_ctx.set(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        _emit(
            logger,
            logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO,
            {
                "event": "request",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        request_id_ctx.reset(token)

    response.headers["X-Request-ID"] = request_id
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    _emit(
        logger,
        logging.ERROR,
        {
            "event": "unhandled_exception",
            "request_id": _request_id_for(request),
            "path": request.url.path,
            "error": str(exc),
            "traceback": traceback.format_exc(limit=10),
        },
    )
    return _error_response(status_code=500, request=request, message="Internal server error")


async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, str):
        message, details = exc.detail, None
    else:
        message, details = "HTTP error", exc.detail
    return _error_response(
        status_code=exc.status_code,
        request=request,
        message=message,
        details=details,
        headers=exc.headers,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        location = [str(part) for part in err.get("loc", []) if part != "body"]
        details.append(
            {
                "field": ".".join(location) if location else "body",
                "message": err.get("msg", "Invalid value"),
                "type": err.get("type"),
            }
        )

    return _error_response(
        status_code=422,
        request=request,
        message="Validation failed",
        details=details,
    )
