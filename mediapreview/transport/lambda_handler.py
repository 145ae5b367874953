# mediapreview/transport/lambda_handler.py
"""
AWS Lambda (API Gateway proxy) entry point.

Route: ``/{sig}/{url+}`` with ``pathParameters.sig`` and ``pathParameters.url``.
Each invocation runs on its own event loop with its own scratch directory
``<scratch_root>/<aws_request_id>``. Faults propagate so the platform
records them as invocation errors.
"""
from __future__ import annotations

import asyncio

from mediapreview.config import settings
from mediapreview.core.pipeline import PreviewPipeline, PreviewRun, build_pipeline
from mediapreview.infra.logging_config import get_logger, setup_logging
from mediapreview.infra.scratch import scratch_directory
from mediapreview.transport.responses import build_response, invalid_signature_response
from mediapreview.transport.security import InvalidSignatureError, decode_target_url

setup_logging(level=settings.log_level, use_json=True)

logger = get_logger(__name__)

_pipeline: PreviewPipeline | None = None


def get_pipeline() -> PreviewPipeline:
    # No shared session: the event loop does not outlive an invocation
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline(settings)
    return _pipeline


async def handle_event(event: dict, request_id: str) -> dict:
    params = event.get("pathParameters") or {}
    sig = params.get("sig") or ""
    url_segment = params.get("url") or ""

    try:
        url = decode_target_url(settings.secret_key_base, sig, url_segment)
    except InvalidSignatureError:
        logger.warning("Rejected preview request: invalid signature")
        return invalid_signature_response().to_lambda()

    run = PreviewRun(run_id=request_id, request_id=request_id)
    async with scratch_directory(settings.scratch_root, run_id=request_id) as scratch_dir:
        outcome = await get_pipeline().run(url, scratch_dir, run=run)

    return build_response(outcome).to_lambda()


def handler(event, context):
    return asyncio.run(handle_event(event, context.aws_request_id))
