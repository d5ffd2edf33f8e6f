# backend/scanpos/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/scanpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///scanpos.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # How many movements/sales the barcode lookup returns
    RECENT_ACTIVITY_LIMIT = _env_int("RECENT_ACTIVITY_LIMIT", 5)

    # Report caps
    TOP_PRODUCTS_LIMIT = _env_int("TOP_PRODUCTS_LIMIT", 10)
    LOW_STOCK_LIMIT = _env_int("LOW_STOCK_LIMIT", 20)

    # "Today" in the stats snapshot is the calendar day in this zone
    LOCAL_TIMEZONE = os.environ.get("LOCAL_TIMEZONE", "UTC")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("LOG_JSON", "true").lower() == "true"
