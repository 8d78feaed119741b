# backend/posledger/config.py
from __future__ import annotations
import os
from decimal import Decimal


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # MDR billing: invoices are due on this day of the following month
    BILLING_DUE_DAY = int(os.environ.get("BILLING_DUE_DAY", "7"))
    BILLING_PENALTY_RATE = Decimal(os.environ.get("BILLING_PENALTY_RATE", "0.10"))
    BILLING_TIMEZONE = os.environ.get("BILLING_TIMEZONE", "Asia/Jakarta")

    # thread | inline | deferred
    JOURNAL_POSTING_MODE = os.environ.get("JOURNAL_POSTING_MODE", "thread")
    JOURNAL_OUTBOX_MAX_ATTEMPTS = int(os.environ.get("JOURNAL_OUTBOX_MAX_ATTEMPTS", "5"))
