# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bill numbers look like EM-0001
    BILL_NUMBER_PREFIX = os.environ.get("BILL_NUMBER_PREFIX", "EM")
    BILL_NUMBER_PAD = int(os.environ.get("BILL_NUMBER_PAD", "4"))

    LOW_STOCK_DEFAULT = int(os.environ.get("LOW_STOCK_DEFAULT", "10"))

    # Pass unexpected error messages through to API responses (turn off in production)
    EXPOSE_INTERNAL_ERRORS = _env_bool("EXPOSE_INTERNAL_ERRORS", True)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
