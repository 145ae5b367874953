# tests/test_lambda_handler.py
"""Tests for the AWS Lambda entry point."""
from __future__ import annotations

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mediapreview.core.domain import ImageMetadataError, PreviewResult, Success, TimedOut
from mediapreview.transport.security import sign_url

SECRET = "lambda-test-secret-0123456789ABCDEFGH"
URL = "https://cdn.example.com/dog.png"


def _event(sig: str, url_segment: str) -> dict:
    return {"pathParameters": {"sig": sig, "url": url_segment}}


@pytest.fixture
def lambda_env(tmp_path):
    from mediapreview.transport import lambda_handler

    pipeline = MagicMock()
    pipeline.run = AsyncMock()
    with patch.object(lambda_handler, "settings") as mock_settings, \
            patch.object(lambda_handler, "get_pipeline", return_value=pipeline):
        mock_settings.secret_key_base = SECRET
        mock_settings.scratch_root = str(tmp_path)
        yield lambda_handler, pipeline, tmp_path


class TestLambdaHandler:
    def test_success(self, lambda_env):
        module, pipeline, root = lambda_env
        pipeline.run.return_value = Success(PreviewResult(content=b"webp!", content_type="image/webp"))
        sig, encoded = sign_url(SECRET, URL)

        result = module.handler(_event(sig, f"{encoded}/dog.png"), SimpleNamespace(aws_request_id="req-123"))

        assert result["statusCode"] == 200
        assert result["isBase64Encoded"] is True
        assert base64.b64decode(result["body"]) == b"webp!"
        assert result["headers"]["Content-Type"] == "image/webp"

        url, scratch_dir = pipeline.run.call_args.args[:2]
        assert url == URL
        assert scratch_dir == root / "req-123"
        assert not scratch_dir.exists()

    def test_invalid_signature(self, lambda_env):
        module, pipeline, _ = lambda_env
        _, encoded = sign_url(SECRET, URL)

        result = module.handler(_event("bogus", encoded), SimpleNamespace(aws_request_id="req-1"))

        assert result["statusCode"] == 404
        assert result["body"] == "invalid signature"
        pipeline.run.assert_not_called()

    def test_missing_path_parameters(self, lambda_env):
        module, _, _ = lambda_env
        result = module.handler({}, SimpleNamespace(aws_request_id="req-2"))
        assert result["statusCode"] == 404

    def test_timeout(self, lambda_env):
        module, pipeline, _ = lambda_env
        pipeline.run.return_value = TimedOut("transfer")
        sig, encoded = sign_url(SECRET, URL)

        result = module.handler(_event(sig, encoded), SimpleNamespace(aws_request_id="req-3"))

        assert result["statusCode"] == 504

    def test_fault_propagates_and_cleans_up(self, lambda_env):
        module, pipeline, root = lambda_env
        pipeline.run.side_effect = ImageMetadataError("corrupt")
        sig, encoded = sign_url(SECRET, URL)

        with pytest.raises(ImageMetadataError):
            module.handler(_event(sig, encoded), SimpleNamespace(aws_request_id="req-4"))

        assert not (root / "req-4").exists()

    def test_duplicate_request_id_refused(self, lambda_env):
        module, pipeline, root = lambda_env
        (root / "req-5").mkdir()
        sig, encoded = sign_url(SECRET, URL)

        with pytest.raises(FileExistsError):
            module.handler(_event(sig, encoded), SimpleNamespace(aws_request_id="req-5"))
        pipeline.run.assert_not_called()
