"""Quota Ledger — Application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class LedgerSettings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_prefix": "QUOTA_LEDGER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # ── Authorities ────────────────────────────────────────────
    initial_admin: str = "ledger-admin"
    initial_oracle: str | None = None

    # ── Issuance limits ────────────────────────────────────────
    pool_cap: int = 1_000_000_000
    min_expiration: int = 2025

    # ── Journal ────────────────────────────────────────────────
    journal_enabled: bool = True

    # ── Logging ────────────────────────────────────────────────
    log_level: str = "INFO"
    log_format: str = "json"


settings = LedgerSettings()
