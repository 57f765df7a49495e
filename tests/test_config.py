"""
Tests for settings loading.
"""

import pytest
from decimal import Decimal

from pydantic import ValidationError

from ledger_engine.config import AppSettings, LedgerSettings, get_settings, validate_all_settings
from ledger_engine.engine import BudgetEvaluator


class TestLedgerSettings:
    """Tests for LEDGER_* environment configuration."""

    def test_defaults(self):
        settings = LedgerSettings()

        assert settings.alert_threshold_percent == 90.0
        assert settings.uncategorized_label == "Uncategorized"
        assert settings.default_categories_list[0] == "Food"
        assert "Salary" in settings.default_categories_list

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ALERT_THRESHOLD_PERCENT", "75")
        monkeypatch.setenv("LEDGER_DEFAULT_CATEGORIES", "Rent, Food,,")

        settings = LedgerSettings()

        assert settings.alert_threshold_percent == 75.0
        assert settings.default_categories_list == ["Rent", "Food"]
        assert BudgetEvaluator.from_settings(settings).alert_threshold == Decimal("75.0")

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            LedgerSettings(alert_threshold_percent=0)


class TestAppSettings:
    """Tests for application wiring settings."""

    def test_backend_restricted(self):
        with pytest.raises(ValidationError):
            AppSettings(storage_backend="postgres")

    def test_validate_all_settings_memory_backend(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        get_settings.cache_clear()

        results = validate_all_settings()

        assert results["app"] is True
        assert results["ledger"] is True
        assert "google_sheets" not in results
        get_settings.cache_clear()

    def test_validate_all_settings_reports_missing_sheets_config(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()

        results = validate_all_settings()

        assert results["google_sheets"] is False
        assert "google_sheets_error" in results
        get_settings.cache_clear()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
