# backend/unistore/config.py
from __future__ import annotations
import os


def _csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().upper() for part in value.split(",") if part.strip())


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/unistore.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///unistore.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("UNISTORE_LOG_LEVEL", "INFO")

    # Smart-code segments that mark a transaction as a balanced ledger
    # (point-of-sale tickets, GL journals).
    BALANCED_SEGMENTS = _csv(os.environ.get("UNISTORE_BALANCED_SEGMENTS", "POS,GL,JOURNAL"))
    BALANCE_TOLERANCE = os.environ.get("UNISTORE_BALANCE_TOLERANCE", "0.01")

    DEFAULT_PAGE_SIZE = int(os.environ.get("UNISTORE_DEFAULT_PAGE_SIZE", "100"))
    MAX_PAGE_SIZE = int(os.environ.get("UNISTORE_MAX_PAGE_SIZE", "500"))

    # First month of the fiscal year (4 = April) for derived posting periods
    FISCAL_YEAR_START_MONTH = int(os.environ.get("UNISTORE_FISCAL_YEAR_START_MONTH", "4"))
