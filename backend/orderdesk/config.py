# Overview: Environment-driven configuration for the OrderDesk application.

from __future__ import annotations
import os


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///orderdesk.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Internal codes carry the business date of this timezone
    ORDERDESK_TIMEZONE = os.environ.get("ORDERDESK_TIMEZONE", "Asia/Seoul")

    # Product suggestions below this similarity fall through to direct input
    SUGGEST_MIN_SCORE = _float_env("SUGGEST_MIN_SCORE", 0.35)
    SUGGEST_LIMIT = int(os.environ.get("SUGGEST_LIMIT", "10"))

    # Browser origins allowed to call the API (comma separated)
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ]

    # Upload size guard for staged spreadsheets (bytes)
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))
