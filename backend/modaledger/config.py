# backend/modaledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/modaledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///modaledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Catalog import apply step: fan-out and per-item timeout (seconds)
    LEDGER_IMPORT_CONCURRENCY = int(os.environ.get("LEDGER_IMPORT_CONCURRENCY", "5"))
    LEDGER_IMPORT_ITEM_TIMEOUT = float(os.environ.get("LEDGER_IMPORT_ITEM_TIMEOUT", "5"))

    # Idle interval between SSE keep-alive comments on live collection streams
    LEDGER_LIVE_HEARTBEAT_SECONDS = float(os.environ.get("LEDGER_LIVE_HEARTBEAT_SECONDS", "15"))
