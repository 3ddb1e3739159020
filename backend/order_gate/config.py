# backend/order_gate/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/order_gate.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///order_gate.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Fixed-window admission limiter (per client IP)
    RATE_LIMIT_WINDOW_SECONDS = int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "60"))
    RATE_LIMIT_MAX_REQUESTS = int(os.environ.get("RATE_LIMIT_MAX_REQUESTS", "10"))

    # Scores strictly above this threshold blacklist the IP automatically
    FRAUD_AUTO_BLOCK_SCORE = int(os.environ.get("FRAUD_AUTO_BLOCK_SCORE", "90"))
    FRAUD_VELOCITY_WINDOW_SECONDS = int(os.environ.get("FRAUD_VELOCITY_WINDOW_SECONDS", "3600"))

    # Admin console collaborator authenticates with a shared bearer token
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN", "dev-admin-token-change-me")

    # Honor X-Forwarded-For / X-Real-IP when resolving the client IP
    TRUST_PROXY_HEADERS = _env_bool("TRUST_PROXY_HEADERS", True)
