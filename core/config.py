from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional


BASE_DIR = Path(__file__).resolve().parents[1]

DEFAULT_DATABASE_URL = f"sqlite:///{BASE_DIR / 'varakalar.db'}"
DEFAULT_TABLE = "varakalar"
DEFAULT_POLL_SECONDS = 5.0
DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_REPORT_DIR = BASE_DIR / "reports"
DEFAULT_LOG_LEVEL = "INFO"

ENV_DATABASE_URL = "VARAKA_DATABASE_URL"
ENV_TABLE = "VARAKA_TABLE"
ENV_POLL_SECONDS = "VARAKA_POLL_SECONDS"
ENV_DEBOUNCE_SECONDS = "VARAKA_DEBOUNCE_SECONDS"
ENV_REPORT_DIR = "VARAKA_REPORT_DIR"
ENV_LOG_LEVEL = "VARAKA_LOG_LEVEL"

# Display caps for the dashboard cards.
PARETO_LIMIT = 10
TOP_PLATES_LIMIT = 3
PARETO_RULE_PCT = 80.0

NO_DATA_MESSAGE = "Henüz veri yüklenmemiş. Excel dosyası yükleyerek başlayın."


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    table: str = DEFAULT_TABLE
    poll_seconds: float = DEFAULT_POLL_SECONDS
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    report_dir: Path = DEFAULT_REPORT_DIR
    log_level: str = DEFAULT_LOG_LEVEL


def _as_float(value: Optional[str], default: float) -> float:
    if value is None or not str(value).strip():
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    return out if out >= 0 else default


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if env is None else env
    report_dir = (env.get(ENV_REPORT_DIR) or "").strip()
    return Settings(
        database_url=(env.get(ENV_DATABASE_URL) or "").strip() or DEFAULT_DATABASE_URL,
        table=(env.get(ENV_TABLE) or "").strip() or DEFAULT_TABLE,
        poll_seconds=_as_float(env.get(ENV_POLL_SECONDS), DEFAULT_POLL_SECONDS),
        debounce_seconds=_as_float(env.get(ENV_DEBOUNCE_SECONDS), DEFAULT_DEBOUNCE_SECONDS),
        report_dir=Path(report_dir) if report_dir else DEFAULT_REPORT_DIR,
        log_level=(env.get(ENV_LOG_LEVEL) or "").strip().upper() or DEFAULT_LOG_LEVEL,
    )


_logging_configured = False


def configure_logging(settings: Optional[Settings] = None) -> None:
    global _logging_configured
    if _logging_configured:
        return
    level = getattr(logging, (settings or load_settings()).log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    _logging_configured = True
