from __future__ import annotations

from pathlib import Path

from core.config import DEFAULT_DATABASE_URL, DEFAULT_POLL_SECONDS, DEFAULT_REPORT_DIR, load_settings
from core.errors import DataUnavailable, error_message


def test_defaults_without_environment():
    settings = load_settings({})
    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.table == "varakalar"
    assert settings.poll_seconds == DEFAULT_POLL_SECONDS
    assert settings.debounce_seconds == 0.5
    assert settings.report_dir == DEFAULT_REPORT_DIR
    assert settings.log_level == "INFO"


def test_environment_overrides():
    settings = load_settings(
        {
            "VARAKA_DATABASE_URL": "postgresql://u:p@db/varaka",
            "VARAKA_TABLE": "ceza",
            "VARAKA_POLL_SECONDS": "2",
            "VARAKA_DEBOUNCE_SECONDS": "0",
            "VARAKA_REPORT_DIR": "/tmp/raporlar",
            "VARAKA_LOG_LEVEL": "debug",
        }
    )
    assert settings.database_url == "postgresql://u:p@db/varaka"
    assert settings.table == "ceza"
    assert settings.poll_seconds == 2.0
    assert settings.debounce_seconds == 0.0
    assert settings.report_dir == Path("/tmp/raporlar")
    assert settings.log_level == "DEBUG"


def test_invalid_numbers_fall_back_to_defaults():
    settings = load_settings({"VARAKA_POLL_SECONDS": "sık", "VARAKA_DEBOUNCE_SECONDS": "-1"})
    assert settings.poll_seconds == DEFAULT_POLL_SECONDS
    assert settings.debounce_seconds == 0.5


def test_error_message_falls_back_to_class_name():
    assert error_message(DataUnavailable()) == "DataUnavailable"
    assert error_message(DataUnavailable("  boş  ")) == "boş"
