# mediapreview/transport/http_app.py
"""
HTTP application serving signed previews.

Endpoints:
1. Public: GET /{sig}/{encoded_url}[/{filename}] (signature-gated)
2. Public: GET /health (liveness), GET /ready (ffmpeg and scratch storage)
3. Protected: GET /metrics (Bearer METRICS_TOKEN when configured)
"""
from __future__ import annotations

import os
import shutil
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from mediapreview.config import settings, warn_on_risky_config
from mediapreview.core.pipeline import PreviewPipeline, PreviewRun, build_pipeline
from mediapreview.infra.http_client import close_all_sessions, get_fetcher_session
from mediapreview.infra.logging_config import get_logger, setup_logging
from mediapreview.infra.metrics import get_metrics_collector
from mediapreview.infra.scratch import scratch_directory
from mediapreview.transport.middleware import (
    ErrorHandlingMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from mediapreview.transport.responses import (
    PreviewResponse,
    build_response,
    invalid_signature_response,
)
from mediapreview.transport.security import (
    InvalidSignatureError,
    SecurityHeaders,
    check_configured_tokens,
    decode_target_url,
    require_metrics_auth,
    sanitize_error_message,
)

setup_logging(level=settings.log_level, use_json=settings.is_production)

logger = get_logger(__name__)


def get_pipeline(request: Request) -> PreviewPipeline:
    """Pipeline built in lifespan; built on first use when lifespan did not run (tests)."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        pipeline = request.app.state.pipeline = build_pipeline(settings)
    return pipeline


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        return SecurityHeaders.add_security_headers(await call_next(request))


def verify_startup_config() -> None:
    """Refuse to start a misconfigured production server; warn otherwise."""
    if settings.is_production:
        missing = settings.validate_required_for_production()
        if missing:
            logger.critical(f"Refusing to start, missing settings: {missing}")
            raise RuntimeError(f"Missing production config: {missing}")
        if settings.log_level.upper() == "DEBUG":
            # DEBUG logs carry unmasked origin URLs
            raise RuntimeError("LOG_LEVEL=DEBUG in production")

    for warning in warn_on_risky_config(settings):
        logger.warning(f"CONFIG: {warning}")
    check_configured_tokens()


def readiness() -> dict[str, bool]:
    return {
        "ffmpeg": shutil.which(settings.ffmpeg_path) is not None,
        "scratch_root": os.access(settings.scratch_root, os.W_OK),
    }


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    logger.info(f"Preview server starting: env={settings.app_env}, image_mode={settings.image_transform_mode}")
    verify_startup_config()

    # One pooled session for every origin fetch of this process
    fastapi_app.state.pipeline = build_pipeline(settings, session=get_fetcher_session())
    try:
        yield
    finally:
        await close_all_sessions()
        logger.info("Preview server stopped")


app = FastAPI(
    title="Media Preview",
    description="Signed-URL image and video preview service",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None,
    openapi_url=None if settings.is_production else "/openapi.json",
)

# Added innermost first: RequestID ends up outermost
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Pipeline faults end up here as 500"""
    logger.error(f"Preview fault: {exc.__class__.__name__}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": sanitize_error_message(exc, settings.is_production)},
    )


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/ready")
def ready():
    checks = readiness()
    ok = all(checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ready" if ok else "not ready", "checks": checks},
    )


@app.get("/metrics", dependencies=[Depends(require_metrics_auth)])
def metrics():
    if not settings.enable_metrics:
        raise HTTPException(status_code=404, detail="Not found")
    return get_metrics_collector().get_metrics()


@app.get("/{sig}/{encoded_url:path}")
async def preview(
    sig: str,
    encoded_url: str,
    request: Request,
    pipeline: PreviewPipeline = Depends(get_pipeline),
):
    """
    Preview endpoint.

    ``encoded_url`` is the base64url target URL, optionally followed by
    ``/<filename>`` which is ignored.
    """
    try:
        url = decode_target_url(settings.secret_key_base, sig, encoded_url)
    except InvalidSignatureError:
        logger.warning("Rejected preview request: invalid signature")
        return _to_response(invalid_signature_response())

    request_id = getattr(request.state, "request_id", None)
    run = PreviewRun(request_id=request_id)

    async with scratch_directory(settings.scratch_root) as scratch_dir:
        outcome = await pipeline.run(url, scratch_dir, run=run)

    return _to_response(build_response(outcome))


def _to_response(preview_response: PreviewResponse) -> Response:
    headers = dict(preview_response.headers)
    media_type = headers.pop("Content-Type", None)
    return Response(
        content=preview_response.body,
        status_code=preview_response.status_code,
        headers=headers,
        media_type=media_type,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mediapreview.transport.http_app:app",
        host=settings.http_host,
        port=settings.http_port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,  # middleware logs requests in prod
        server_header=False,
        date_header=False,
    )
