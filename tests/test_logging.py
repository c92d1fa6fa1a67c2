"""
Unit tests for logging configuration and setup.

Tests setup_logging, file handlers, email alerts, and config loading errors
surfaced through the CLI module.
"""

import logging
import logging.handlers
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

from exceptions import ConfigError
from main import setup_logging, load_config


@pytest.fixture(autouse=True)
def reset_root_logger():
    """Give each test a root logger without handlers and restore it afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    root.handlers = []
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


def _handlers_of(kind):
    return [h for h in logging.getLogger().handlers if type(h) is kind]


class TestSetupLogging:
    """Test setup_logging function."""

    def test_basic_logging_config(self):
        setup_logging({"logging": {"level": "INFO"}})

        assert logging.getLogger().level == logging.INFO
        assert len(_handlers_of(logging.StreamHandler)) == 1

    def test_debug_level(self):
        setup_logging({"logging": {"level": "debug"}})

        assert logging.getLogger().level == logging.DEBUG

    def test_missing_logging_config_uses_defaults(self):
        setup_logging({})

        assert logging.getLogger().level == logging.INFO

    def test_invalid_log_level_defaults_to_info(self):
        with patch("main.logger") as mock_logger:
            setup_logging({"logging": {"level": "INVALID_LEVEL"}})
            mock_logger.warning.assert_called()

        assert logging.getLogger().level == logging.INFO

    def test_log_format_gets_timestamp(self):
        setup_logging({"logging": {"level": "INFO", "format": "%(levelname)s - %(message)s"}})

        formatter = logging.getLogger().handlers[0].formatter
        assert formatter._fmt == "%(asctime)s - %(levelname)s - %(message)s"

    def test_file_logging_creates_directory_and_file(self, tmp_path):
        log_file = tmp_path / "subdir" / "app.log"

        setup_logging({"logging": {"level": "INFO", "file": str(log_file)}})

        assert len(_handlers_of(logging.FileHandler)) == 1
        assert len(_handlers_of(logging.StreamHandler)) == 1
        assert log_file.exists()

    def test_unwritable_log_file_is_non_fatal(self, tmp_path):
        """A directory cannot be opened as a log file; console logging stays on."""
        with patch("main.logger") as mock_logger:
            setup_logging({"logging": {"level": "INFO", "file": str(tmp_path)}})
            mock_logger.warning.assert_called()

        assert _handlers_of(logging.FileHandler) == []
        assert len(_handlers_of(logging.StreamHandler)) == 1

    def test_email_alerts_enabled(self):
        config = {
            "logging": {"level": "INFO"},
            "email_alerts": {
                "enabled": True,
                "smtp_host": "smtp.example.com",
                "smtp_port": 587,
                "from_address": "alerts@example.com",
                "to_addresses": ["admin@example.com"],
                "level": "CRITICAL",
                "use_tls": True,
            },
        }

        setup_logging(config)

        smtp_handlers = _handlers_of(logging.handlers.SMTPHandler)
        assert len(smtp_handlers) == 1
        assert smtp_handlers[0].level == logging.CRITICAL
        assert smtp_handlers[0].toaddrs == ["admin@example.com"]

    def test_email_alerts_missing_config_non_fatal(self):
        with patch("main.logger") as mock_logger:
            setup_logging({"email_alerts": {"enabled": True}})
            mock_logger.warning.assert_called()

        assert _handlers_of(logging.handlers.SMTPHandler) == []
        assert len(logging.getLogger().handlers) >= 1

    def test_email_alerts_bad_port_non_fatal(self):
        config = {
            "email_alerts": {
                "enabled": True,
                "smtp_host": "invalid-host",
                "smtp_port": 99999,
                "from_address": "alerts@example.com",
                "to_addresses": ["admin@example.com"],
            }
        }

        with patch("main.logger") as mock_logger:
            setup_logging(config)
            mock_logger.warning.assert_called()

        assert _handlers_of(logging.handlers.SMTPHandler) == []

    def test_email_alerts_disabled(self):
        setup_logging({"email_alerts": {"enabled": False, "smtp_host": "smtp.example.com"}})

        assert _handlers_of(logging.handlers.SMTPHandler) == []


class TestLoadConfig:
    """Test load_config error handling."""

    def test_load_config_success(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text(yaml.dump({"test": "value"}))

        config = load_config(config_path)

        assert config["test"] == "value"

    def test_load_config_file_not_found(self):
        with pytest.raises(ConfigError) as exc_info:
            load_config(Path("/nonexistent/config.yaml"))

        assert "not found" in exc_info.value.message.lower()
        assert "config_path" in exc_info.value.details

    def test_load_config_invalid_yaml(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("invalid: yaml: [")

        with pytest.raises(ConfigError) as exc_info:
            load_config(config_path)

        assert "invalid yaml" in exc_info.value.message.lower()
        assert exc_info.value.original_error is not None

    def test_load_config_empty_file(self, tmp_path):
        config_path = tmp_path / "config.yaml"
        config_path.write_text("")

        with pytest.raises(ConfigError) as exc_info:
            load_config(config_path)

        assert "empty" in exc_info.value.message.lower()
