# backend/tripflow/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tripflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Per-batch write limit for wage ledger entries (settlement and reversal)
    LEDGER_BATCH_SIZE = int(os.environ.get("LEDGER_BATCH_SIZE", "500"))

    # Attempts for run_with_retry on lock contention / stale versions
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))

    # Fiscal year starts on the first day of this month (April)
    FISCAL_YEAR_START_MONTH = int(os.environ.get("FISCAL_YEAR_START_MONTH", "4"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
