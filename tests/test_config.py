"""Tests for settings, logging and error types."""

import json
import logging
import sys

import pytest
from pydantic import ValidationError

sys.path.insert(0, "src")

from ghostwatch.config import Settings, get_settings, reset_settings
from ghostwatch.config.logging import (
    JSONFormatter,
    SanitizingFilter,
    TextFormatter,
    configure_logging,
)
from ghostwatch.errors import AlreadyRunningError, ConfigurationError, RuleNotFoundError
from ghostwatch.utils.validation import sanitize_log_message


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        s = Settings()
        assert s.scheduler_tick_seconds == 30
        assert s.missing_field_policy == "conservative"
        assert s.lock_backend == "memory"
        assert s.data_source_urls == {}

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("GHOSTWATCH_SCHEDULER_TICK_SECONDS", "5")
        monkeypatch.setenv("GHOSTWATCH_MISSING_FIELD_POLICY", "zero_value")
        monkeypatch.setenv("GHOSTWATCH_DATA_SOURCE_URLS", '{"ghosts": "http://metrics/api"}')
        s = Settings()
        assert s.scheduler_tick_seconds == 5
        assert s.missing_field_policy == "zero_value"
        assert s.data_source_urls == {"ghosts": "http://metrics/api"}

    def test_yaml_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "ghostwatch.yaml").write_text("scheduler_tick_seconds: 12\nlog_format: JSON\n")
        s = Settings()
        assert s.scheduler_tick_seconds == 12
        assert s.log_format == "json"

    def test_env_beats_yaml(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "ghostwatch.yaml").write_text("scheduler_tick_seconds: 12\n")
        monkeypatch.setenv("GHOSTWATCH_SCHEDULER_TICK_SECONDS", "7")
        assert Settings().scheduler_tick_seconds == 7

    def test_invalid_values_rejected(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ValidationError):
            Settings(log_format="xml")
        with pytest.raises(ValidationError):
            Settings(missing_field_policy="guess")
        with pytest.raises(ValidationError):
            Settings(scheduler_tick_seconds=0)

    def test_get_settings_is_cached(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        reset_settings()
        try:
            assert get_settings() is get_settings()
        finally:
            reset_settings()


class TestLogging:
    """Tests for logging configuration."""

    def test_json_formatter_includes_extras(self):
        record = logging.LogRecord("ghostwatch.engine", logging.INFO, "", 0, "ran", (), None)
        record.rule_id = "r1"
        record.matched_count = 3
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "ran"
        assert data["rule_id"] == "r1"
        assert data["matched_count"] == 3
        assert "execution_id" not in data

    def test_text_formatter_appends_context(self):
        record = logging.LogRecord("ghostwatch.engine", logging.INFO, "", 0, "ran", (), None)
        record.rule_id = "r1"
        line = TextFormatter().format(record)
        assert line.endswith("ran [rule_id=r1]")

    def test_sanitizing_filter(self):
        record = logging.LogRecord(
            "x", logging.INFO, "", 0, "posting to %s", ("https://discord.com/api/webhooks/1/abc",), None
        )
        SanitizingFilter().filter(record)
        assert "abc" not in record.getMessage()
        assert "REDACTED" in record.getMessage()

    def test_sanitize_credentials(self):
        message = sanitize_log_message("postgresql://user:hunter2@db/ghostwatch password=hunter2")
        assert "hunter2" not in message

    def test_configure_logging_replaces_handlers(self):
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            configure_logging(level="DEBUG", format="json")
            configure_logging(level="WARNING", format="text")
            assert len(root.handlers) == 1
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])


class TestErrors:
    """Tests for error types."""

    def test_to_dict(self):
        error = ConfigurationError("bad schedule", field="schedule")
        data = error.to_dict()
        assert data["error"] == "CONFIGURATION"
        assert data["message"] == "bad schedule"
        assert data["details"]["field"] == "schedule"

    def test_codes(self):
        assert AlreadyRunningError("r1").code == "ALREADY_RUNNING"
        assert RuleNotFoundError("r1").details == {"rule_id": "r1"}
