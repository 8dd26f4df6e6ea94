"""Tests for engine settings and logging setup."""

import logging

import pytest
from pydantic import ValidationError

from offline_pos.core.config import Settings
from offline_pos.core.observability import SyncRunFilter, configure_logging, get_sync_run_id, sync_run


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.max_sync_attempts == 5
        assert settings.sync_interval_seconds == 300
        assert settings.sale_endpoint == "/api/pos/create-sale"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("OFFLINE_POS_MAX_SYNC_ATTEMPTS", "3")
        monkeypatch.setenv("OFFLINE_POS_API_BASE_URL", "https://shop.example.com/")

        settings = Settings(_env_file=None)

        assert settings.max_sync_attempts == 3
        assert settings.api_base_url == "https://shop.example.com"

    @pytest.mark.parametrize("field, value", [
        ("max_sync_attempts", 0),
        ("sync_interval_seconds", 0),
        ("request_timeout_seconds", -1),
        ("reconnect_sync_delay_seconds", -0.5),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_timeout_longer_than_probe_interval_warns(self):
        with pytest.warns(UserWarning):
            Settings(_env_file=None, request_timeout_seconds=60, probe_interval_seconds=30)


class TestObservability:

    def test_sync_run_binds_and_resets(self):
        assert get_sync_run_id() is None
        with sync_run("run-1") as run_id:
            assert run_id == "run-1"
            assert get_sync_run_id() == "run-1"
        assert get_sync_run_id() is None

    def test_filter_stamps_records(self):
        record = logging.LogRecord("offline_pos", logging.INFO, __file__, 1, "msg", None, None)
        with sync_run("run-2"):
            SyncRunFilter().filter(record)
        assert record.sync_run_id == "run-2"

    def test_configure_logging_is_idempotent(self):
        logger = logging.getLogger("offline_pos")
        before = len(logger.handlers)
        configure_logging("DEBUG")
        configure_logging("INFO")
        added = [h for h in logger.handlers if getattr(h, "_offline_pos", False)]
        assert len(logger.handlers) - before <= 1
        assert len(added) == 1
        assert logger.level == logging.INFO
