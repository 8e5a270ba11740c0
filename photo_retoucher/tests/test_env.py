"""Tests for environment helpers."""

import logging
from unittest.mock import patch

import pytest
from keyring.errors import KeyringError

from ..utils.env import load_api_key, setup_logging

GET_PASSWORD = "photo_retoucher.utils.env.keyring.get_password"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("API_KEY", raising=False)


class TestLoadApiKey:
    """Test API key lookup order."""

    def test_environment_first(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GEMINI_API_KEY", "from-env")
        with patch(GET_PASSWORD, return_value="from-keyring"):
            assert load_api_key(str(tmp_path / ".env")) == "from-env"

    def test_fallback_name(self, monkeypatch, tmp_path):
        monkeypatch.setenv("API_KEY", "generic")
        with patch(GET_PASSWORD, return_value=None):
            assert load_api_key(str(tmp_path / ".env")) == "generic"

    def test_keyring_second(self, tmp_path):
        with patch(GET_PASSWORD, return_value="from-keyring"):
            assert load_api_key(str(tmp_path / ".env")) == "from-keyring"

    def test_env_file_last(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text('# comment\nOTHER=1\nGEMINI_API_KEY="from-file"\n', encoding="utf-8")
        with patch(GET_PASSWORD, return_value=None):
            assert load_api_key(str(env_file)) == "from-file"

    def test_placeholder_ignored(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("GEMINI_API_KEY=your_key_here\n", encoding="utf-8")
        with patch(GET_PASSWORD, return_value=None):
            assert load_api_key(str(env_file)) is None

    def test_keyring_failure_falls_through(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("API_KEY=from-file\n", encoding="utf-8")
        with patch(GET_PASSWORD, side_effect=KeyringError("no backend")):
            assert load_api_key(str(env_file)) == "from-file"


class TestSetupLogging:
    """Test logging configuration."""

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "run.log"
        setup_logging(logging.DEBUG, str(log_file))
        logging.getLogger("photo_retoucher.test").debug("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")

    def test_console_only(self):
        setup_logging(logging.INFO, None)
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)
