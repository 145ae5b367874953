# tests/test_cli.py
"""Tests for the mediapreview command-line tool."""
from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from mediapreview import cli
from mediapreview.transport.responses import PreviewResponse
from mediapreview.transport.security import signed_path


class TestPreviewCommand:
    def test_writes_output(self, tmp_path, capsys):
        response = PreviewResponse(
            status_code=200,
            headers={"Content-Type": "image/webp", "ETag": '"abc"'},
            body=b"webp-bytes",
        )
        output = tmp_path / "out.webp"
        with patch.object(cli, "run_preview", AsyncMock(return_value=response)):
            code = cli.main(["preview", "https://example.com/a.png", "-o", str(output)])

        assert code == 0
        assert output.read_bytes() == b"webp-bytes"
        out = capsys.readouterr().out
        assert "status: 200" in out
        assert "Content-Type: image/webp" in out

    def test_failure_exit_code(self, tmp_path, capsys):
        with patch.object(cli, "run_preview", AsyncMock(side_effect=RuntimeError("boom"))):
            code = cli.main(["preview", "https://example.com/a.png", "-o", str(tmp_path / "o")])

        assert code == cli.EXIT_FAILURE
        assert "boom" in capsys.readouterr().err

    def test_missing_url(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["preview"])
        assert exc_info.value.code == cli.EXIT_USAGE

    def test_no_command(self, capsys):
        assert cli.main([]) == cli.EXIT_USAGE
        assert "No argument" in capsys.readouterr().err


class TestSignCommand:
    def test_prints_signed_path(self, capsys):
        code = cli.main(["sign", "https://example.com/a.png", "--secret", "s3cret", "-f", "a.png"])
        assert code == 0
        assert capsys.readouterr().out.strip().splitlines()[-1] == signed_path("s3cret", "https://example.com/a.png", "a.png")

    def test_missing_secret(self, capsys):
        with patch.object(cli, "settings") as mock_settings:
            mock_settings.secret_key_base = None
            mock_settings.log_level = "INFO"
            code = cli.main(["sign", "https://example.com/a.png"])
        assert code == cli.EXIT_USAGE
