"""
Quota Ledger — record models and rejection codes.

Quota terms and usage are fixed-shape, frozen Pydantic records. The engine
never mutates a record in place: each committed transition builds the
replacement with ``model_copy(update=...)`` and swaps it into the state maps,
so a snapshot taken before a call can never be altered by that call.

Rejection codes carry stable numeric identities. Callers assert on the
numbers, so members must never be renumbered or removed.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

MAX_POOL_ID_LENGTH = 50
DEFAULT_POOL_CAP = 1_000_000_000
DEFAULT_MIN_EXPIRATION = 2025


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class ErrorCode(enum.IntEnum):
    """Rejection codes returned in ``OperationResult.value`` on failure."""

    NOT_AUTHORIZED = 100
    QUOTA_NOT_FOUND = 101
    INVALID_RECIPIENT = 102
    INVALID_AMOUNT = 103
    INVALID_POOL = 104
    INVALID_EXPIRATION = 105
    QUOTA_LOCKED = 106  # reserved
    BURN_NOT_PERMITTED = 107
    QUOTA_ALREADY_MINTED = 108  # reserved
    INVALID_OWNER = 109
    QUOTA_FROZEN = 110
    METADATA_NOT_SET = 111
    ORACLE_NOT_AUTHORIZED = 112
    INSUFFICIENT_QUOTA = 113
    BURN_AMOUNT_EXCEEDS = 114
    TRANSFER_LOCKED = 115
    QUOTA_EXPIRED = 116
    INVALID_QUOTA_ID = 117  # reserved
    POOL_CAP_EXCEEDED = 118
    INVALID_FRACTIONAL = 119


# ════════════════════════════════════════════════════════════════
# Quota Records
# ════════════════════════════════════════════════════════════════


class QuotaTerms(BaseModel):
    """
    Terms of a single quota.

    Everything except ``amount`` and ``locked`` is fixed at mint (or split)
    time. ``amount`` is the unconsumed remainder and only ever decreases.
    """

    model_config = {"frozen": True, "strict": True}

    pool_id: str = Field(
        min_length=1,
        max_length=MAX_POOL_ID_LENGTH,
        description="Resource pool the quota draws from",
    )
    amount: int = Field(ge=0, description="Remaining granted quantity")
    expiration_height: int = Field(
        ge=0, description="Height after which the quota is expired"
    )
    issued_at: int = Field(ge=0, description="Clock value at mint or split")
    locked: bool = Field(default=False, description="Advisory lock flag")
    transferable: bool
    burnable: bool
    fractional_allowed: bool

    def is_expired_at(self, now: int) -> bool:
        return self.expiration_height < now


class QuotaUsage(BaseModel):
    """Cumulative consumption recorded against a quota."""

    model_config = {"frozen": True, "strict": True}

    used: int = Field(default=0, ge=0, description="Cumulative amount consumed")
    last_updated: int = Field(default=0, ge=0, description="Clock value of last mutation")


class LedgerState(BaseModel):
    """
    The complete mutable state of one ledger.

    Owned exclusively by a ``LedgerEngine``. ``ownership``, ``terms`` and
    ``usage`` always share one key set.
    """

    admin: str
    oracle: str | None = None
    next_quota_id: int = Field(default=1, ge=1)
    pool_cap: int = Field(default=DEFAULT_POOL_CAP, gt=0)
    frozen: bool = False
    ownership: dict[int, str] = Field(default_factory=dict)
    terms: dict[int, QuotaTerms] = Field(default_factory=dict)
    usage: dict[int, QuotaUsage] = Field(default_factory=dict)
    pool_totals: dict[str, int] = Field(default_factory=dict)


# ════════════════════════════════════════════════════════════════
# Operation Results
# ════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a ledger operation: ``(success, value)``."""

    success: bool
    value: Any

    @classmethod
    def accept(cls, value: Any = True) -> OperationResult:
        return cls(success=True, value=value)

    @classmethod
    def reject(cls, code: ErrorCode) -> OperationResult:
        return cls(success=False, value=code)

    @property
    def code(self) -> ErrorCode | None:
        """The rejection code, or None for a successful result."""
        return None if self.success else self.value

    def __iter__(self):
        return iter((self.success, self.value))
