# tests/test_sign_url_script.py
"""Tests for scripts/sign_url.py"""
import importlib.util
from pathlib import Path

import pytest

from mediapreview.transport.security import decode_target_url, signed_path

SCRIPT = Path(__file__).parent.parent / "scripts" / "sign_url.py"
SECRET = "script-test-secret-0123456789ABCDEF"
URL = "https://cdn.example.com/photo.jpg?size=large"


@pytest.fixture
def sign_url_script():
    spec = importlib.util.spec_from_file_location("sign_url_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestSignUrlScript:
    def test_uses_server_signing(self, sign_url_script):
        assert sign_url_script.signed_path is signed_path

    def test_prints_verifiable_path(self, sign_url_script, capsys):
        sign_url_script.main([URL, "--secret", SECRET, "--filename", "photo.jpg"])

        path = capsys.readouterr().out.strip()
        assert path == signed_path(SECRET, URL, "photo.jpg")
        _, sig, url_segment = path.split("/", 2)
        assert decode_target_url(SECRET, sig, url_segment) == URL

    def test_host_prefix(self, sign_url_script, capsys):
        sign_url_script.main([URL, "-s", SECRET, "--host", "https://preview.example.com/"])
        assert capsys.readouterr().out.strip() == "https://preview.example.com" + signed_path(SECRET, URL)

    def test_secret_from_env(self, sign_url_script, capsys, monkeypatch):
        monkeypatch.setenv("SECRET_KEY_BASE", SECRET)
        sign_url_script.main([URL])
        assert capsys.readouterr().out.strip() == signed_path(SECRET, URL)

    def test_missing_secret_exits(self, sign_url_script, monkeypatch):
        monkeypatch.delenv("SECRET_KEY_BASE", raising=False)
        with pytest.raises(SystemExit) as exc_info:
            sign_url_script.main([URL])
        assert exc_info.value.code == 1
