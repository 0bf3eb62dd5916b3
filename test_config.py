"""
Tests for environment-driven settings and app configuration
"""

import pytest

from roofbid.config import DEFAULT_CATALOG_PATH, Settings, configure_logging, load_settings


def test_defaults(monkeypatch):
    for name in ("ROOFBID_DB_PATH", "ROOFBID_CATALOG_PATH", "ROOFBID_DEFAULT_OVERHEAD_PERCENT",
                 "ROOFBID_ESTIMATE_VALID_DAYS"):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()
    assert settings.db_path == "roofbid.db"
    assert settings.catalog_path == DEFAULT_CATALOG_PATH
    assert settings.default_overhead_percent == 10.0
    assert settings.estimate_valid_days == 30


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ROOFBID_DB_PATH", "/tmp/other.db")
    monkeypatch.setenv("ROOFBID_DEFAULT_TAX_PERCENT", "7.25")
    monkeypatch.setenv("ROOFBID_ESTIMATE_VALID_DAYS", "14")

    settings = load_settings()
    assert settings.db_path == "/tmp/other.db"
    assert settings.default_tax_percent == 7.25
    assert settings.estimate_valid_days == 14


def test_bad_number(monkeypatch):
    monkeypatch.setenv("ROOFBID_DEFAULT_PROFIT_PERCENT", "lots")
    with pytest.raises(ValueError):
        load_settings()


def test_flask_config_keys():
    config = Settings(company_name="Acme Roofing").to_flask_config()
    assert config["ROOFBID_COMPANY_NAME"] == "Acme Roofing"
    assert config["ROOFBID_DEFAULT_PROFIT_PERCENT"] == 15.0


def test_configure_app_round_trip(settings):
    from roofbid.app import app, configure_app, current_settings

    configure_app(settings)
    assert app.config["ROOFBID_DB_PATH"] == settings.db_path
    assert current_settings() == settings


def test_configure_logging_accepts_any_level_name():
    configure_logging("not-a-level")
    configure_logging("debug")
