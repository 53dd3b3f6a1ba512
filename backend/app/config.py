# backend/app/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Orders: tax in basis points (700 = 7%)
    ORDER_TAX_RATE_BPS = _env_int("ORDER_TAX_RATE_BPS", 700)

    # Rewards: one-time bonus once every required task is approved
    COMPLETION_BONUS_POINTS = _env_int("COMPLETION_BONUS_POINTS", 15)

    # OTP login
    OTP_TTL_MINUTES = _env_int("OTP_TTL_MINUTES", 10)
    OTP_MAX_FAILED_ATTEMPTS = _env_int("OTP_MAX_FAILED_ATTEMPTS", 5)
    OTP_LOCKOUT_MINUTES = _env_int("OTP_LOCKOUT_MINUTES", 15)

    # Proof uploads (local blob store)
    UPLOAD_FOLDER = os.environ.get(
        "UPLOAD_FOLDER",
        os.path.join(os.path.dirname(os.path.dirname(__file__)), "uploads"),
    )
    UPLOAD_URL_PREFIX = "/uploads"
    MAX_CONTENT_LENGTH = _env_int("MAX_CONTENT_LENGTH", 50 * 1024 * 1024)

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        ).split(",")
        if origin.strip()
    ]
