# backend/yuandi/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/yuandi.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///yuandi.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound for a single statement (lock waits included)
    DB_STATEMENT_TIMEOUT_MS = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", "5000"))

    # Retry policy for lock conflicts and optimistic version mismatches
    TX_RETRY_ATTEMPTS = int(os.environ.get("TX_RETRY_ATTEMPTS", "5"))
    TX_RETRY_BACKOFF_SECONDS = float(os.environ.get("TX_RETRY_BACKOFF_SECONDS", "0.05"))
    TX_TIMEOUT_SECONDS = float(os.environ.get("TX_TIMEOUT_SECONDS", "10"))

    BASE_CURRENCY = "KRW"
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Seoul")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


def engine_options_for(uri: str, statement_timeout_ms: int) -> dict:
    """
    Driver-level timeouts so a stuck statement fails instead of hanging.

    SQLite: busy timeout (seconds) while waiting on the database lock.
    PostgreSQL: server-side statement_timeout (milliseconds).
    """
    if uri.startswith("sqlite"):
        return {"connect_args": {"timeout": statement_timeout_ms / 1000.0}}
    if uri.startswith("postgresql"):
        return {
            "pool_pre_ping": True,
            "connect_args": {"options": f"-c statement_timeout={statement_timeout_ms}"},
        }
    return {"pool_pre_ping": True}
