# backend/branchpos/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/branchpos.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///branchpos.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Lock-conflict retry policy for order creation and pickup
    ORDER_RETRY_ATTEMPTS = int(os.environ.get("ORDER_RETRY_ATTEMPTS", "3"))
    ORDER_RETRY_BACKOFF_SECONDS = float(os.environ.get("ORDER_RETRY_BACKOFF_SECONDS", "0.1"))

    # Pagination for order listings
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "50"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "200"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
