# backend/tradeledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tradeledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tradeledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite busy timeout (seconds) while waiting on another writer's lock.
    # Applied by create_app only when the final URI is SQLite.
    SQLITE_BUSY_TIMEOUT = float(os.environ.get("SQLITE_BUSY_TIMEOUT", "5"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Upper bound for any single statement inside a sale/payment unit of work
    # (PostgreSQL only; SQLite relies on the busy timeout above).
    LEDGER_STATEMENT_TIMEOUT_MS = int(os.environ.get("LEDGER_STATEMENT_TIMEOUT_MS", "5000"))
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))


def engine_options_for(uri: str, options: dict | None, busy_timeout: float) -> dict:
    """
    SQLALCHEMY_ENGINE_OPTIONS for the resolved database URI.

    Only the sqlite driver accepts connect_args={"timeout": ...}; an explicit
    timeout in `options` wins over busy_timeout.
    """
    options = dict(options or {})
    if uri.startswith("sqlite"):
        connect_args = dict(options.get("connect_args") or {})
        connect_args.setdefault("timeout", busy_timeout)
        options["connect_args"] = connect_args
    return options
