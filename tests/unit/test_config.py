"""Tests for settings, logging setup and facade construction from settings."""

import logging
from datetime import date

import pytest

from closeflow.core.audit import MemoryAuditStore, SqlAuditStore
from closeflow.core.config import Settings
from closeflow.core.logger import configure_logging, setup_logger
from closeflow.core.orchestration import OrchestrationFacade


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        """Test default values."""
        monkeypatch.delenv("CLOSEFLOW_DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)
        assert settings.database_url is None
        assert settings.export_timeout == 30.0
        assert settings.webhook_urls_list == []

    def test_environment_prefix(self, monkeypatch):
        """Test CLOSEFLOW_ prefixed variables are read."""
        monkeypatch.setenv("CLOSEFLOW_EXPORT_TIMEOUT", "12.5")
        monkeypatch.setenv("CLOSEFLOW_WEBHOOK_URLS", "https://a.example.com, ,https://b.example.com")
        settings = Settings(_env_file=None)
        assert settings.export_timeout == 12.5
        assert settings.webhook_urls_list == ["https://a.example.com", "https://b.example.com"]

    def test_cors_origins_list(self):
        settings = Settings(cors_origins="http://localhost:3000, https://close.example.com")
        assert settings.cors_origins_list == ["http://localhost:3000", "https://close.example.com"]


class TestLogger:
    """Tests for logger setup."""

    def test_console_only(self, tmp_path):
        logger = setup_logger("closeflow-test-console", log_dir=str(tmp_path), file_logging=False)
        assert logger.level == logging.INFO
        assert not any(isinstance(h, logging.FileHandler) for h in logger.handlers)
        assert not list(tmp_path.iterdir())

    def test_file_logging(self, tmp_path):
        logger = setup_logger("closeflow-test-file", log_dir=str(tmp_path / "logs"), level="debug")
        logger.debug("written")
        assert logger.level == logging.DEBUG
        assert (tmp_path / "logs" / "closeflow-test-file.log").exists()

    def test_invalid_level(self, tmp_path):
        with pytest.raises(ValueError):
            setup_logger("closeflow-test-bad", log_dir=str(tmp_path), level="loud")

    def test_no_duplicate_handlers(self, tmp_path):
        first = setup_logger("closeflow-test-dup", log_dir=str(tmp_path), file_logging=False)
        count = len(first.handlers)
        second = setup_logger("closeflow-test-dup", log_dir=str(tmp_path), file_logging=False)
        assert second is first
        assert len(second.handlers) == count

    def test_configure_from_settings(self, tmp_path):
        settings = Settings(_env_file=None, log_level="warning", log_dir=str(tmp_path), log_to_file=False)
        logger = configure_logging(settings)
        assert logger.name == "closeflow"
        assert logger.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING


class TestFacadeFromSettings:
    """Tests for building the facade from settings."""

    def test_in_memory_by_default(self):
        facade = OrchestrationFacade.from_settings(Settings(_env_file=None, database_url=None))
        assert isinstance(facade.audit.store, MemoryAuditStore)
        assert facade.notifier is not None
        assert not facade.notifier.running

    def test_sql_store(self):
        facade = OrchestrationFacade.from_settings(Settings(_env_file=None, database_url="sqlite://"))
        assert isinstance(facade.audit.store, SqlAuditStore)

    def test_template_from_file(self, tmp_path):
        template_file = tmp_path / "workflow.yaml"
        template_file.write_text(
            "steps:\n"
            "  - {id: collect, name: Collect}\n"
            "  - {id: publish, name: Publish, dependencies: [collect]}\n"
        )
        facade = OrchestrationFacade.from_settings(
            Settings(_env_file=None, workflow_template_path=str(template_file))
        )
        facade.register_batch("b1", date(2024, 1, 31))
        assert [s["id"] for s in facade.workflow_steps("b1")["steps"]] == ["collect", "publish"]
