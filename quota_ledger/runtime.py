"""
Quota Ledger — runtime wiring.

Builds a ledger engine from settings and configures structured logging for
hosts that embed it.
"""

from __future__ import annotations

import logging

import structlog

from quota_ledger.config import LedgerSettings, settings as default_settings
from quota_ledger.ledger.engine import LedgerEngine
from quota_ledger.ledger.journal import TransitionJournal

logger = logging.getLogger(__name__)


def configure_logging(settings: LedgerSettings | None = None) -> None:
    """Configure structured logging."""
    settings = settings or default_settings
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    logging.getLogger("quota_ledger").setLevel(settings.log_level.upper())


def create_ledger(settings: LedgerSettings | None = None) -> LedgerEngine:
    """Construct an engine with an empty state and, if enabled, a fresh journal."""
    settings = settings or default_settings
    journal = TransitionJournal() if settings.journal_enabled else None
    engine = LedgerEngine(
        admin=settings.initial_admin,
        oracle=settings.initial_oracle,
        pool_cap=settings.pool_cap,
        min_expiration=settings.min_expiration,
        journal=journal,
    )

    log = structlog.get_logger()
    log.info(
        "quota_ledger.runtime.ledger_ready",
        admin=settings.initial_admin,
        oracle=settings.initial_oracle,
        pool_cap=settings.pool_cap,
        journal=settings.journal_enabled,
    )
    return engine
