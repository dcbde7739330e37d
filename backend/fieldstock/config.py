# backend/fieldstock/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///fieldstock.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Serialise SQLite writers at BEGIN (no effect on other databases)
    SQLITE_BEGIN_IMMEDIATE = _env_bool("SQLITE_BEGIN_IMMEDIATE", True)

    # "strict" or "include_unscoped" (also matches legacy rows with NULL org_id)
    ORG_SCOPE_MODE = os.environ.get("ORG_SCOPE_MODE", "strict")

    # "optimistic" (read-then-verify) or "skip_locked" (FOR UPDATE SKIP LOCKED)
    ALLOCATION_STRATEGY = os.environ.get("ALLOCATION_STRATEGY", "optimistic")
    ALLOCATION_MAX_ATTEMPTS = int(os.environ.get("ALLOCATION_MAX_ATTEMPTS", "3"))

    WORKFLOW_RETRY_ATTEMPTS = int(os.environ.get("WORKFLOW_RETRY_ATTEMPTS", "3"))
    WORKFLOW_RETRY_BACKOFF = float(os.environ.get("WORKFLOW_RETRY_BACKOFF", "0.1"))

    SLIP_NUMBER_MAX_ATTEMPTS = int(os.environ.get("SLIP_NUMBER_MAX_ATTEMPTS", "10"))

    # Legacy reports counted DRAFT receipts as stock; ledger units only exist
    # for COMPLETED ones. Off by default.
    STOCK_LEVEL_INCLUDE_DRAFT_RECEIPTS = _env_bool("STOCK_LEVEL_INCLUDE_DRAFT_RECEIPTS", False)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
