"""
Tests for configuration and audit logging.
"""

import pytest

from lifesync.audit import AuditLogger, create_correlation_id
from lifesync.config import SyncSettings, get_settings, validate_all_settings
from lifesync.models.audit import AuditEventBuilder


class TestSyncSettings:
    """Tests for SyncSettings."""

    def test_defaults(self):
        """Test default configuration."""
        settings = SyncSettings(_env_file=None)
        assert settings.request_timeout_seconds == 30.0
        assert settings.subscribe_retry_attempts == 1
        assert settings.optimistic_updates is False
        assert settings.log_level == "INFO"

    def test_environment_override(self, monkeypatch):
        """Test LIFESYNC_ prefixed environment variables."""
        monkeypatch.setenv("LIFESYNC_OPTIMISTIC_UPDATES", "true")
        monkeypatch.setenv("LIFESYNC_REQUEST_TIMEOUT_SECONDS", "5")
        settings = SyncSettings(_env_file=None)
        assert settings.optimistic_updates is True
        assert settings.request_timeout_seconds == 5.0

    def test_log_level_normalized(self):
        """Test that log levels are case-insensitive."""
        assert SyncSettings(_env_file=None, log_level="debug").log_level == "DEBUG"

    def test_unknown_log_level(self):
        """Test that made-up levels are rejected."""
        with pytest.raises(ValueError):
            SyncSettings(_env_file=None, log_level="LOUD")

    def test_inverted_backoff(self):
        """Test that max wait below min wait is rejected."""
        with pytest.raises(ValueError):
            SyncSettings(
                _env_file=None,
                subscribe_retry_min_wait_seconds=5,
                subscribe_retry_max_wait_seconds=1,
            )

    def test_timeout_must_be_positive(self):
        """Test the timeout bound."""
        with pytest.raises(ValueError):
            SyncSettings(_env_file=None, request_timeout_seconds=0)

    def test_get_settings_is_cached(self):
        """Test that get_settings returns one instance."""
        get_settings.cache_clear()
        assert get_settings() is get_settings()

    def test_validate_all_settings(self):
        """Test the startup check."""
        get_settings.cache_clear()
        assert validate_all_settings()["sync"] is True

    def test_validate_all_settings_reports_errors(self, monkeypatch):
        """Test that bad environment values are reported, not raised."""
        monkeypatch.setenv("LIFESYNC_LOG_LEVEL", "LOUD")
        get_settings.cache_clear()
        results = validate_all_settings()
        assert results["sync"] is False
        assert "sync_error" in results


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_sink_receives_events(self):
        """Test forwarding to the sink."""
        events = []
        logger = AuditLogger(sink=events.append)
        event = AuditEventBuilder.subscription_started("Task")

        assert logger.log(event) is True
        assert events == [event]

    def test_failing_sink_is_contained(self):
        """Test that a broken sink never raises."""
        def broken(event):
            raise ConnectionError("collector down")

        logger = AuditLogger(sink=broken)
        assert logger.log(AuditEventBuilder.subscription_started("Task")) is False

    def test_no_sink(self):
        """Test local-only logging."""
        logger = AuditLogger()
        logger.log_error("RuntimeError", "boom", details={"where": "test"})

    def test_correlation_ids_are_unique(self):
        """Test correlation id generation."""
        assert create_correlation_id() != create_correlation_id()
