# tests/test_classifier.py
"""Tests for response classification (status + Content-Type)."""
import pytest

from mediapreview.core.classifier import Decision, classify, media_kind_for
from mediapreview.core.domain import MediaKind


class TestStatusHandling:
    @pytest.mark.parametrize("status", [403, 404, 410])
    def test_passthrough_statuses(self, status):
        result = classify(status, "image/png")
        assert result.decision is Decision.REJECTED
        assert result.status == status
        assert result.proceed is False

    @pytest.mark.parametrize("status", [400, 401, 418, 429, 500, 502, 503, 304])
    def test_other_non_ok_is_upstream_error(self, status):
        result = classify(status, "image/png")
        assert result.decision is Decision.UPSTREAM_ERROR
        assert result.status == status

    def test_status_checked_before_content_type(self):
        assert classify(404, "text/html").decision is Decision.REJECTED
        assert classify(500, None).decision is Decision.UPSTREAM_ERROR


class TestContentType:
    def test_image(self):
        result = classify(200, "image/png")
        assert result.decision is Decision.PROCEED
        assert result.kind is MediaKind.IMAGE
        assert result.proceed is True

    def test_video(self):
        result = classify(200, "video/mp4")
        assert result.kind is MediaKind.VIDEO

    def test_parameters_and_case_ignored(self):
        assert classify(200, "Image/JPEG; charset=binary").kind is MediaKind.IMAGE

    @pytest.mark.parametrize("content_type", [None, "", "text/html", "application/octet-stream"])
    def test_unsupported(self, content_type):
        result = classify(200, content_type)
        assert result.decision is Decision.UNSUPPORTED
        assert result.kind is None

    def test_other_2xx_proceeds(self):
        assert classify(203, "image/gif").decision is Decision.PROCEED


class TestMediaKindFor:
    def test_video_wins_when_both_present(self):
        assert media_kind_for("video/webm, image/webp") is MediaKind.VIDEO

    def test_none(self):
        assert media_kind_for(None) is None
