"""Tests for settings loading."""

import pytest
from pydantic import ValidationError

from wafaudit.core.config import Settings


class TestSettings:
    """Tests for environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        for var in ("AUDIT_PARALLEL", "AUDIT_CONCURRENCY", "SCOPE_TIMEOUT_SECONDS", "GRAPH_TRANSPORT"):
            monkeypatch.delenv(var, raising=False)
        settings = Settings(_env_file=None)

        assert settings.audit_parallel is True
        assert settings.audit_concurrency == 5
        assert settings.scope_timeout_seconds == 600.0
        assert settings.graph_transport == "auto"

    def test_subscription_ids_from_comma_separated_env(self, monkeypatch):
        monkeypatch.setenv("SUBSCRIPTION_IDS", "sub-1, sub-2,,sub-3")
        settings = Settings(_env_file=None)
        assert settings.subscription_ids == ["sub-1", "sub-2", "sub-3"]

    def test_execution_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("AUDIT_PARALLEL", "false")
        monkeypatch.setenv("AUDIT_CONCURRENCY", "10")
        settings = Settings(_env_file=None)
        assert settings.audit_parallel is False
        assert settings.audit_concurrency == 10

    @pytest.mark.parametrize("value", [0, 51])
    def test_concurrency_bounds(self, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, audit_concurrency=value)

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, scope_timeout_seconds=0)

    def test_log_level_normalized(self):
        assert Settings(_env_file=None, log_level="debug").log_level == "DEBUG"
        assert Settings(_env_file=None, log_level="chatty").log_level == "INFO"

    def test_service_principal_detection(self, test_settings, sp_settings):
        assert not test_settings.has_service_principal
        assert sp_settings.has_service_principal
