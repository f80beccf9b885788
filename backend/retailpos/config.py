# backend/retailpos/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/retailpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///retailpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # bcrypt cost factor; tests lower it to keep hashing fast
    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Resolved permission contexts, keyed per tenant + user
    PERMISSION_CACHE_ENABLED = _env_bool("PERMISSION_CACHE_ENABLED", True)
    PERMISSION_CACHE_TTL_SECONDS = int(os.environ.get("PERMISSION_CACHE_TTL_SECONDS", "300"))
    PERMISSION_CACHE_MAX_SIZE = int(os.environ.get("PERMISSION_CACHE_MAX_SIZE", "10000"))

    # Order notification email. With no MAIL_SERVER the message is only logged.
    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "25"))
    MAIL_SENDER = os.environ.get("MAIL_SENDER", "no-reply@retailpos.local")
    EMAIL_ASYNC = _env_bool("EMAIL_ASYNC", True)
