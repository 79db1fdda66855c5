# backend/marketplace/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/marketplace.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///marketplace.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Pricing
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "ZAR")
    # Percent (e.g. "15" = 15%); used only when no platform.default_tax_rate setting exists
    PLATFORM_DEFAULT_TAX_RATE = os.environ.get("PLATFORM_DEFAULT_TAX_RATE", "0")

    # Scheduling
    DEFAULT_LAST_SERVICE_BUFFER_MINUTES = int(os.environ.get("DEFAULT_LAST_SERVICE_BUFFER_MINUTES", "15"))
    TRAVEL_BASE_MINUTES = int(os.environ.get("TRAVEL_BASE_MINUTES", "30"))
    TRAVEL_MINUTES_PER_KM = float(os.environ.get("TRAVEL_MINUTES_PER_KM", "2"))
    FALLBACK_STAFF_POOL_LIMIT = int(os.environ.get("FALLBACK_STAFF_POOL_LIMIT", "10"))

    # Locked booking write unit
    BOOKING_LOCK_RETRY_ATTEMPTS = int(os.environ.get("BOOKING_LOCK_RETRY_ATTEMPTS", "3"))
