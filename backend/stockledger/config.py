# backend/stockledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Shared store (items, journal, counterparties, documents)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockledger.sqlite3",
    )
    # Offline queue lives in its own local database, never shared across sessions
    SQLALCHEMY_BINDS = {
        "offline": os.environ.get("OFFLINE_QUEUE_URL", "sqlite:///offline_queue.sqlite3"),
    }
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Balance drift tolerance in cents (1.0 currency unit)
    BALANCE_EPSILON_CENTS = int(os.environ.get("BALANCE_EPSILON_CENTS", "100"))

    # Reconciliation sweep commits every N entities
    RECONCILE_BATCH_SIZE = int(os.environ.get("RECONCILE_BATCH_SIZE", "500"))

    # Optimistic-concurrency retries on the atomic path
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))
    RETRY_BACKOFF_BASE = float(os.environ.get("RETRY_BACKOFF_BASE", "0.1"))

    DEFAULT_LOW_STOCK_THRESHOLD = int(os.environ.get("DEFAULT_LOW_STOCK_THRESHOLD", "10"))

    # Read cache entries live until invalidated. A positive value also bounds how long
    # writes from another process (CLI drain or reconcile) can stay hidden.
    READ_CACHE_TTL_SECONDS = float(os.environ.get("READ_CACHE_TTL_SECONDS", "0"))

    # A drain that dies keeps the offline queue lease until it expires
    OFFLINE_DRAIN_LEASE_SECONDS = int(os.environ.get("OFFLINE_DRAIN_LEASE_SECONDS", "300"))
