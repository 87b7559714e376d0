# backend/invoicer/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///invoicer.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Remote collaborators. Empty URL means "not configured".
    IDENTITY_SERVICE_URL = os.environ.get("IDENTITY_SERVICE_URL", "http://127.0.0.1:54321/auth/v1")
    IDENTITY_API_KEY = os.environ.get("IDENTITY_API_KEY", "")
    EXPORT_SERVICE_URL = os.environ.get("EXPORT_SERVICE_URL", "")
    EMAIL_SERVICE_URL = os.environ.get("EMAIL_SERVICE_URL", "")
    WEBHOOK_URL = os.environ.get("WEBHOOK_URL", "")
    REMOTE_TIMEOUT_SECONDS = float(os.environ.get("REMOTE_TIMEOUT_SECONDS", "10"))

    # Seed values for a freshly provisioned tenant
    DEFAULT_TENANT_NAME = os.environ.get("DEFAULT_TENANT_NAME", "My Company")
    DEFAULT_TAX_RATE_BPS = int(os.environ.get("DEFAULT_TAX_RATE_BPS", "810"))  # 8.1%
    DEFAULT_DUE_DAYS = int(os.environ.get("DEFAULT_DUE_DAYS", "30"))
    DEFAULT_OFFER_VALIDITY_DAYS = int(os.environ.get("DEFAULT_OFFER_VALIDITY_DAYS", "30"))
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "CHF")
    DEFAULT_INVOICE_NUMBER_FORMAT = os.environ.get("DEFAULT_INVOICE_NUMBER_FORMAT", "F-{YYYY}-{MM}-{###}")
    DEFAULT_OFFER_NUMBER_FORMAT = os.environ.get("DEFAULT_OFFER_NUMBER_FORMAT", "ANG-{YYYY}-{MM}-{###}")
