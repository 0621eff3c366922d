# backend/boutique/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///boutique.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Replays of a checkout / receipt on lock or version conflicts
    WRITE_RETRY_ATTEMPTS = _env_int("WRITE_RETRY_ATTEMPTS", 3)
    WRITE_RETRY_BACKOFF_SECONDS = _env_float("WRITE_RETRY_BACKOFF_SECONDS", 0.1)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Till / dashboard dev servers
    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    )

    # Pricing / loyalty
    # Applied only when neither the variant nor the product carries a rate.
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "0")
    # One loyalty point per 100 currency units (amounts are in cents).
    LOYALTY_POINT_UNIT_CENTS = _env_int("LOYALTY_POINT_UNIT_CENTS", 10_000)

    # Reorder intelligence
    # Share of trailing-30-day profit treated as reinvestable in stock.
    REINVESTABLE_PROFIT_FRACTION = _env_float("REINVESTABLE_PROFIT_FRACTION", 0.7)
    STOCKOUT_SENTINEL_DAYS = _env_int("STOCKOUT_SENTINEL_DAYS", 999)
    DEFAULT_SUPPLIER_LEAD_TIME_DAYS = _env_int("DEFAULT_SUPPLIER_LEAD_TIME_DAYS", 7)
    DEFAULT_LOW_STOCK_THRESHOLD = _env_int("DEFAULT_LOW_STOCK_THRESHOLD", 10)
    DEFAULT_REORDER_QUANTITY = _env_int("DEFAULT_REORDER_QUANTITY", 50)
    VELOCITY_WINDOW_DAYS = _env_int("VELOCITY_WINDOW_DAYS", 30)
    TREND_STABLE_BAND = _env_float("TREND_STABLE_BAND", 0.10)
    RECOMMENDATION_INPUT_LIMIT = _env_int("RECOMMENDATION_INPUT_LIMIT", 50)

    # External collaborators (empty URL disables the call)
    RECOMMENDATION_PROVIDER_URL = os.environ.get("RECOMMENDATION_PROVIDER_URL", "")
    RECOMMENDATION_PROVIDER_API_KEY = os.environ.get("RECOMMENDATION_PROVIDER_API_KEY", "")
    RECOMMENDATION_PROVIDER_TIMEOUT = _env_float("RECOMMENDATION_PROVIDER_TIMEOUT", 30.0)
    SEARCH_MIRROR_URL = os.environ.get("SEARCH_MIRROR_URL", "")
    SEARCH_MIRROR_API_KEY = os.environ.get("SEARCH_MIRROR_API_KEY", "")
    SEARCH_MIRROR_TIMEOUT = _env_float("SEARCH_MIRROR_TIMEOUT", 5.0)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    RECOMMENDATION_PROVIDER_URL = ""
    SEARCH_MIRROR_URL = ""
    WRITE_RETRY_BACKOFF_SECONDS = 0.0
