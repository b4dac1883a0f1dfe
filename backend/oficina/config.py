# backend/oficina/config.py
from __future__ import annotations
import os


def _csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite file in the instance folder unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///oficina.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Commands retried on lock timeouts and stale version reads
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))

    # Polling feed size (clients poll the unread counter and this feed)
    NOTIFICATION_FEED_LIMIT = int(os.environ.get("NOTIFICATION_FEED_LIMIT", "50"))

    ORDER_CODE_PREFIX = os.environ.get("ORDER_CODE_PREFIX", "OS")

    # Roles that may be assigned as responsible for a service order
    RESPONSIBLE_ROLES = ("Mechanic", "Assistant Mechanic")

    # Roles notified about order lifecycle and cash session events
    NOTIFY_ROLES = ("Manager", "Administrator", "Attendant")

    CORS_ALLOWED_ORIGINS = _csv(os.environ.get("CORS_ALLOWED_ORIGINS")) or [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
