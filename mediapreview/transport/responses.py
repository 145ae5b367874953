# mediapreview/transport/responses.py
"""
PipelineOutcome → HTTP response mapping, shared by the FastAPI app,
the Lambda handler and the CLI.
"""
from __future__ import annotations

import base64
from dataclasses import dataclass, field

from mediapreview.core.domain import (
    PipelineOutcome,
    Rejected,
    Success,
    TimedOut,
    Unsupported,
    UpstreamError,
)

UNSUPPORTED_MESSAGE = "the resource is not an image nor a video"
INVALID_SIGNATURE_MESSAGE = "invalid signature"
TEXT_PLAIN = "text/plain"


@dataclass(frozen=True)
class PreviewResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def content_type(self) -> str | None:
        return self.headers.get("Content-Type")

    def to_lambda(self) -> dict:
        """API Gateway proxy result; binary bodies are base64 encoded."""
        result: dict = {"statusCode": self.status_code, "headers": dict(self.headers)}
        if self.status_code == 200:
            result["isBase64Encoded"] = True
            result["body"] = base64.b64encode(self.body).decode("ascii")
        else:
            result["body"] = self.body.decode("utf-8")
        return result


def build_response(outcome: PipelineOutcome) -> PreviewResponse:
    if isinstance(outcome, Success):
        result = outcome.result
        return PreviewResponse(
            status_code=200,
            headers={
                "Content-Type": result.content_type,
                "ETag": f'"{result.etag}"',
            },
            body=result.content,
        )

    if isinstance(outcome, Rejected):
        return PreviewResponse(status_code=outcome.status)

    if isinstance(outcome, UpstreamError):
        return PreviewResponse(status_code=502)

    if isinstance(outcome, Unsupported):
        return PreviewResponse(
            status_code=502,
            headers={"Content-Type": TEXT_PLAIN},
            body=UNSUPPORTED_MESSAGE.encode(),
        )

    if isinstance(outcome, TimedOut):
        return PreviewResponse(status_code=504, headers={"Content-Type": TEXT_PLAIN})

    raise TypeError(f"Unknown pipeline outcome: {outcome!r}")


def invalid_signature_response() -> PreviewResponse:
    return PreviewResponse(
        status_code=404,
        headers={"Content-Type": TEXT_PLAIN},
        body=INVALID_SIGNATURE_MESSAGE.encode(),
    )
