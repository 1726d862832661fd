"""
Tests for logging setup.
"""

import logging
from pathlib import Path

import pytest

from caskctl.core.observability.logging_config import ENV_LEVEL, resolve_level, setup_logging


class TestResolveLevel:
    def test_flags_take_precedence(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(ENV_LEVEL, "ERROR")
        assert resolve_level(debug=True) == "DEBUG"
        assert resolve_level(verbose=True) == "INFO"
        assert resolve_level(quiet=True) == "ERROR"

    def test_env_then_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv(ENV_LEVEL, "INFO")
        assert resolve_level() == "INFO"
        monkeypatch.delenv(ENV_LEVEL)
        assert resolve_level() == "WARNING"


class TestSetupLogging:
    def test_console_level(self):
        setup_logging(level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert [type(h) for h in root.handlers] == [logging.StreamHandler]

    def test_unknown_level_falls_back_to_warning(self):
        setup_logging(level="LOUD")
        assert logging.getLogger().level == logging.WARNING

    def test_file_handler_at_its_own_level(self, tmp_path: Path):
        log_file = tmp_path / "caskctl.log"
        setup_logging(level="WARNING", log_file=str(log_file), log_file_level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG

        logging.getLogger("caskctl.test").debug("fetching font-sf-arabic")
        for h in root.handlers:
            h.flush()
        assert "fetching font-sf-arabic" in log_file.read_text()
