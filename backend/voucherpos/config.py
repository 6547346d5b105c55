# backend/voucherpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/voucherpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///voucherpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Money is stored as integer minor units; exponent 0 suits zero-decimal currencies (MMK)
    CURRENCY_CODE = os.environ.get("CURRENCY_CODE", "MMK")
    CURRENCY_EXPONENT = int(os.environ.get("CURRENCY_EXPONENT", "0"))

    # Voucher numbers look like V20250114001
    VOUCHER_PREFIX = os.environ.get("VOUCHER_PREFIX", "V")
    VOUCHER_SEQUENCE_PAD = int(os.environ.get("VOUCHER_SEQUENCE_PAD", "3"))

    # bcrypt cost factor; tests lower it
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "5"))

    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    BACKUP_FORMAT_VERSION = "1.0"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Browser terminals allowed to call the API
    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if o.strip()
    )
