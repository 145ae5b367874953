# mediapreview/transport/middleware.py
import logging
import re
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from mediapreview.infra.logging_config import LogContext, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
PREVIEW_TIME_HEADER = "X-Preview-Time-Ms"
SHORT_PATH_LENGTH = 24
UNSHORTENED_PATHS = frozenset({"/health", "/metrics"})

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def resolve_request_id(header_value: str | None) -> str:
    """Use the client's id when it is log-safe, otherwise mint one."""
    if header_value and _SAFE_REQUEST_ID.match(header_value):
        return header_value
    return uuid.uuid4().hex


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach a request id to request.state and echo it in the response"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    One log line per preview request.

    The level follows the status: 5xx at ERROR, 4xx at WARNING, rest INFO.
    Signed paths carry the target URL, so only a prefix is logged.
    """

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[PREVIEW_TIME_HEADER] = f"{elapsed_ms:.0f}"

        if self.enabled:
            log_ctx = LogContext(logger, request_id=getattr(request.state, "request_id", None))
            log_ctx.log(
                _level_for(response.status_code),
                f"{request.method} {_short_path(request.url.path)} "
                f"-> {response.status_code} in {elapsed_ms:.1f}ms "
                f"type={response.headers.get('content-type', '-')} "
                f"bytes={response.headers.get('content-length', '-')}",
                extra={"status_code": response.status_code, "duration_ms": elapsed_ms},
            )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn anything that escaped the route into a JSON 500 with the request id"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            request_id = getattr(request.state, "request_id", None)
            LogContext(logger, request_id=request_id).error(
                f"Preview request crashed: {exc.__class__.__name__}",
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id},
            )


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


def _short_path(path: str) -> str:
    if path in UNSHORTENED_PATHS or len(path) <= SHORT_PATH_LENGTH:
        return path
    return f"{path[:SHORT_PATH_LENGTH]}…"
