"""
Ledger Engine — the quota transition engine.

This engine owns one ledger state and exposes every transition on it:
- Administrative switches (admin, oracle, pool cap, freeze)
- Issuance (mint) and partitioning (split)
- Movement (transfer), consumption (burn, report_usage)
- Advisory locking (lock, unlock)
- Read-only accessors

Each mutating operation is check-then-commit: every precondition is
evaluated, in a fixed order, against the current state before the first
write. A rejection returns an ``OperationResult`` carrying an ``ErrorCode``
and leaves the state, the id counter and the journal exactly as they were.
Rejections are values, never exceptions.

Mutating operations are serialized on a re-entrant lock so a multi-threaded
host cannot observe a half-applied transition.
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any

from quota_ledger.context import CallContext
from quota_ledger.governance.permissions import (
    LedgerAction,
    PermissionEngine,
    is_admin,
    is_oracle,
)
from quota_ledger.ledger.journal import TransitionJournal
from quota_ledger.ledger.models import (
    DEFAULT_MIN_EXPIRATION,
    DEFAULT_POOL_CAP,
    MAX_POOL_ID_LENGTH,
    ErrorCode,
    LedgerState,
    OperationResult,
    QuotaTerms,
    QuotaUsage,
)

logger = logging.getLogger(__name__)


def _is_quantity(value: Any) -> bool:
    """True for a plain integer (bools are not quantities)."""
    return isinstance(value, int) and not isinstance(value, bool)


def _serialized(method):
    @functools.wraps(method)
    def wrapper(self: LedgerEngine, *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class LedgerEngine:
    """
    Quota ledger engine — the single authority over one ledger state.

    Usage:
        engine = LedgerEngine(admin="admin", journal=TransitionJournal())
        ctx = CallContext(sender="admin", now=1000)
        result = engine.mint(ctx, "farmer", "Basin1", 5000, 2030, True, True, True)
        if result.success:
            quota_id = result.value
    """

    def __init__(
        self,
        admin: str,
        oracle: str | None = None,
        pool_cap: int = DEFAULT_POOL_CAP,
        min_expiration: int = DEFAULT_MIN_EXPIRATION,
        journal: TransitionJournal | None = None,
        permissions: PermissionEngine | None = None,
    ) -> None:
        self.state = LedgerState(admin=admin, oracle=oracle, pool_cap=pool_cap)
        self.min_expiration = min_expiration
        self.journal = journal
        self.permissions = permissions or PermissionEngine()
        self._lock = threading.RLock()

    # ── Authorization primitives ────────────────────────────────

    def is_admin(self, sender: str) -> bool:
        return is_admin(self.state, sender)

    def is_oracle(self, sender: str) -> bool:
        return is_oracle(self.state, sender)

    def _owner_of(self, quota_id: Any) -> str | None:
        # bools hash like 0/1 and must not alias real ids
        return self.state.ownership.get(quota_id) if _is_quantity(quota_id) else None

    def _terms_of(self, quota_id: Any) -> QuotaTerms | None:
        return self.state.terms.get(quota_id) if _is_quantity(quota_id) else None

    def _usage_of(self, quota_id: Any) -> QuotaUsage | None:
        return self.state.usage.get(quota_id) if _is_quantity(quota_id) else None

    def _permitted(
        self, action: LedgerAction, ctx: CallContext, owner: str | None = None
    ) -> bool:
        return self.permissions.check(action, ctx.sender, self.state, owner).is_allowed

    # ── Administrative operations ───────────────────────────────

    @_serialized
    def set_admin(self, ctx: CallContext, new_admin: str) -> OperationResult:
        if not self._permitted(LedgerAction.SET_ADMIN, ctx):
            return self._reject(LedgerAction.SET_ADMIN, ctx, ErrorCode.NOT_AUTHORIZED)

        previous = self.state.admin
        self.state.admin = new_admin
        self._commit(LedgerAction.SET_ADMIN, ctx, {"previous": previous, "admin": new_admin})
        logger.info("Admin reassigned: %s -> %s", previous, new_admin)
        return OperationResult.accept(True)

    @_serialized
    def set_oracle(self, ctx: CallContext, new_oracle: str | None) -> OperationResult:
        if not self._permitted(LedgerAction.SET_ORACLE, ctx):
            return self._reject(LedgerAction.SET_ORACLE, ctx, ErrorCode.NOT_AUTHORIZED)

        self.state.oracle = new_oracle
        self._commit(LedgerAction.SET_ORACLE, ctx, {"oracle": new_oracle})
        logger.info("Oracle set: %s", new_oracle)
        return OperationResult.accept(True)

    @_serialized
    def set_pool_cap(self, ctx: CallContext, cap: int) -> OperationResult:
        """Change the per-pool issuance cap. Existing totals are not revisited."""
        if not self._permitted(LedgerAction.SET_POOL_CAP, ctx):
            return self._reject(LedgerAction.SET_POOL_CAP, ctx, ErrorCode.NOT_AUTHORIZED)
        if not _is_quantity(cap) or cap <= 0:
            return self._reject(LedgerAction.SET_POOL_CAP, ctx, ErrorCode.INVALID_AMOUNT)

        self.state.pool_cap = cap
        self._commit(LedgerAction.SET_POOL_CAP, ctx, {"pool_cap": cap})
        logger.info("Pool cap set: %d", cap)
        return OperationResult.accept(True)

    @_serialized
    def freeze_all(self, ctx: CallContext) -> OperationResult:
        return self._set_frozen(ctx, LedgerAction.FREEZE, True)

    @_serialized
    def unfreeze_all(self, ctx: CallContext) -> OperationResult:
        return self._set_frozen(ctx, LedgerAction.UNFREEZE, False)

    def _set_frozen(
        self, ctx: CallContext, action: LedgerAction, frozen: bool
    ) -> OperationResult:
        if not self._permitted(action, ctx):
            return self._reject(action, ctx, ErrorCode.NOT_AUTHORIZED)

        self.state.frozen = frozen
        self._commit(action, ctx, {"frozen": frozen})
        logger.warning("Ledger %s by %s", "FROZEN" if frozen else "unfrozen", ctx.sender)
        return OperationResult.accept(True)

    # ── Issuance ────────────────────────────────────────────────

    @_serialized
    def mint(
        self,
        ctx: CallContext,
        recipient: str,
        pool_id: str,
        amount: int,
        expiration: int,
        transferable: bool,
        burnable: bool,
        fractional_allowed: bool,
    ) -> OperationResult:
        """
        Issue a new quota into ``pool_id`` owned by ``recipient``.

        Check order: admin, recipient, pool id, amount, expiration, flags,
        pool cap. Non-bool flags are malformed arguments and report
        INVALID_AMOUNT.

        Returns:
            OperationResult whose value is the new quota id on success.
        """
        action = LedgerAction.MINT
        if not self._permitted(action, ctx):
            return self._reject(action, ctx, ErrorCode.NOT_AUTHORIZED)
        if recipient == ctx.sender:
            return self._reject(action, ctx, ErrorCode.INVALID_RECIPIENT)
        if not isinstance(pool_id, str) or not 1 <= len(pool_id) <= MAX_POOL_ID_LENGTH:
            return self._reject(action, ctx, ErrorCode.INVALID_POOL)
        if not _is_quantity(amount) or amount <= 0:
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)
        if not _is_quantity(expiration) or expiration < self.min_expiration:
            return self._reject(action, ctx, ErrorCode.INVALID_EXPIRATION)
        flags = (transferable, burnable, fractional_allowed)
        if not all(isinstance(flag, bool) for flag in flags):
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)

        current_total = self.state.pool_totals.get(pool_id, 0)
        if current_total + amount > self.state.pool_cap:
            return self._reject(action, ctx, ErrorCode.POOL_CAP_EXCEEDED)

        quota_id = self.state.next_quota_id
        terms = QuotaTerms(
            pool_id=pool_id,
            amount=amount,
            expiration_height=expiration,
            issued_at=ctx.now,
            locked=False,
            transferable=transferable,
            burnable=burnable,
            fractional_allowed=fractional_allowed,
        )
        usage = QuotaUsage(used=0, last_updated=ctx.now)

        self.state.ownership[quota_id] = recipient
        self.state.terms[quota_id] = terms
        self.state.usage[quota_id] = usage
        self.state.pool_totals[pool_id] = current_total + amount
        self.state.next_quota_id = quota_id + 1

        self._commit(action, ctx, {
            "quota_id": quota_id,
            "recipient": recipient,
            "pool_id": pool_id,
            "amount": amount,
            "expiration": expiration,
            "transferable": transferable,
            "burnable": burnable,
            "fractional_allowed": fractional_allowed,
        })
        logger.info(
            "Quota minted: id=%d pool=%s amount=%d owner=%s",
            quota_id, pool_id, amount, recipient,
        )
        return OperationResult.accept(quota_id)

    # ── Movement ────────────────────────────────────────────────

    @_serialized
    def transfer(self, ctx: CallContext, quota_id: int, new_owner: str) -> OperationResult:
        action = LedgerAction.TRANSFER
        owner = self._owner_of(quota_id)
        if owner is None:
            return self._reject(action, ctx, ErrorCode.QUOTA_NOT_FOUND)
        terms = self._terms_of(quota_id)
        if terms is None:
            return self._reject(action, ctx, ErrorCode.METADATA_NOT_SET)
        if self.state.frozen:
            return self._reject(action, ctx, ErrorCode.QUOTA_FROZEN)
        if not self._permitted(action, ctx, owner):
            return self._reject(action, ctx, ErrorCode.INVALID_OWNER)
        if not terms.transferable:
            return self._reject(action, ctx, ErrorCode.TRANSFER_LOCKED)
        if terms.is_expired_at(ctx.now):
            return self._reject(action, ctx, ErrorCode.QUOTA_EXPIRED)

        self.state.ownership[quota_id] = new_owner
        self._commit(action, ctx, {"quota_id": quota_id, "from": owner, "to": new_owner})
        logger.info("Quota transferred: id=%d %s -> %s", quota_id, owner, new_owner)
        return OperationResult.accept(True)

    # ── Consumption ─────────────────────────────────────────────

    @_serialized
    def burn(self, ctx: CallContext, quota_id: int, amount: int) -> OperationResult:
        """
        Retire ``amount`` of a quota's remainder.

        The exceeds-remainder check runs before the non-positive check, so an
        oversize request reports BURN_AMOUNT_EXCEEDS even when it is also
        otherwise invalid.
        """
        action = LedgerAction.BURN
        owner = self._owner_of(quota_id)
        terms = self._terms_of(quota_id)
        usage = self._usage_of(quota_id)
        if owner is None:
            return self._reject(action, ctx, ErrorCode.QUOTA_NOT_FOUND)
        if terms is None:
            return self._reject(action, ctx, ErrorCode.METADATA_NOT_SET)
        if usage is None:
            return self._reject(action, ctx, ErrorCode.QUOTA_NOT_FOUND)
        if not self._permitted(action, ctx, owner):
            return self._reject(action, ctx, ErrorCode.INVALID_OWNER)
        if not terms.burnable:
            return self._reject(action, ctx, ErrorCode.BURN_NOT_PERMITTED)
        if not _is_quantity(amount):
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)
        if amount > terms.amount - usage.used:
            return self._reject(action, ctx, ErrorCode.BURN_AMOUNT_EXCEEDS)
        if amount <= 0:
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)

        self.state.terms[quota_id] = terms.model_copy(
            update={"amount": terms.amount - amount}
        )
        self.state.usage[quota_id] = usage.model_copy(
            update={"used": usage.used + amount, "last_updated": ctx.now}
        )
        self._commit(action, ctx, {"quota_id": quota_id, "amount": amount})
        logger.info(
            "Quota burned: id=%d amount=%d remaining=%d",
            quota_id, amount, terms.amount - amount,
        )
        return OperationResult.accept(True)

    @_serialized
    def report_usage(self, ctx: CallContext, quota_id: int, used_delta: int) -> OperationResult:
        """
        Record consumption reported by the oracle (or the admin).

        A missing usage record is treated as zero and created on commit.
        """
        action = LedgerAction.REPORT_USAGE
        if not self._permitted(action, ctx):
            return self._reject(action, ctx, ErrorCode.ORACLE_NOT_AUTHORIZED)
        terms = self._terms_of(quota_id)
        if terms is None:
            return self._reject(action, ctx, ErrorCode.METADATA_NOT_SET)
        if not _is_quantity(used_delta):
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)

        usage = self._usage_of(quota_id) or QuotaUsage(used=0, last_updated=0)
        if usage.used + used_delta > terms.amount:
            return self._reject(action, ctx, ErrorCode.INSUFFICIENT_QUOTA)
        if used_delta < 0:
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)

        self.state.usage[quota_id] = usage.model_copy(
            update={"used": usage.used + used_delta, "last_updated": ctx.now}
        )
        self._commit(action, ctx, {"quota_id": quota_id, "used_delta": used_delta})
        logger.info(
            "Usage reported: id=%d delta=%d used=%d/%d",
            quota_id, used_delta, usage.used + used_delta, terms.amount,
        )
        return OperationResult.accept(True)

    # ── Advisory locking ────────────────────────────────────────

    @_serialized
    def lock(self, ctx: CallContext, quota_id: int) -> OperationResult:
        return self._set_locked(ctx, LedgerAction.LOCK, quota_id, True)

    @_serialized
    def unlock(self, ctx: CallContext, quota_id: int) -> OperationResult:
        return self._set_locked(ctx, LedgerAction.UNLOCK, quota_id, False)

    def _set_locked(
        self, ctx: CallContext, action: LedgerAction, quota_id: int, locked: bool
    ) -> OperationResult:
        # Inert flag: no other transition consults it.
        owner = self._owner_of(quota_id)
        if owner is None:
            return self._reject(action, ctx, ErrorCode.QUOTA_NOT_FOUND)
        terms = self._terms_of(quota_id)
        if terms is None:
            return self._reject(action, ctx, ErrorCode.METADATA_NOT_SET)
        if not self._permitted(action, ctx, owner):
            return self._reject(action, ctx, ErrorCode.NOT_AUTHORIZED)

        self.state.terms[quota_id] = terms.model_copy(update={"locked": locked})
        self._commit(action, ctx, {"quota_id": quota_id, "locked": locked})
        logger.info("Quota %s: id=%d", "locked" if locked else "unlocked", quota_id)
        return OperationResult.accept(True)

    # ── Partitioning ────────────────────────────────────────────

    @_serialized
    def split(
        self, ctx: CallContext, quota_id: int, amount: int, recipient: str
    ) -> OperationResult:
        """
        Carve ``amount`` out of a quota into a new quota owned by ``recipient``.

        The source must keep a strictly positive remainder. Pool totals are
        untouched: capacity is partitioned, not issued.

        Returns:
            OperationResult whose value is the new quota id on success.
        """
        action = LedgerAction.SPLIT
        owner = self._owner_of(quota_id)
        if owner is None:
            return self._reject(action, ctx, ErrorCode.QUOTA_NOT_FOUND)
        terms = self._terms_of(quota_id)
        if terms is None:
            return self._reject(action, ctx, ErrorCode.METADATA_NOT_SET)
        if not self._permitted(action, ctx, owner):
            return self._reject(action, ctx, ErrorCode.INVALID_OWNER)
        if not terms.fractional_allowed:
            return self._reject(action, ctx, ErrorCode.INVALID_FRACTIONAL)
        if not _is_quantity(amount) or amount <= 0:
            return self._reject(action, ctx, ErrorCode.INVALID_AMOUNT)
        if amount >= terms.amount:
            return self._reject(action, ctx, ErrorCode.INSUFFICIENT_QUOTA)

        new_id = self.state.next_quota_id
        new_terms = QuotaTerms(
            pool_id=terms.pool_id,
            amount=amount,
            expiration_height=terms.expiration_height,
            issued_at=ctx.now,
            locked=False,
            transferable=terms.transferable,
            burnable=terms.burnable,
            fractional_allowed=terms.fractional_allowed,
        )

        self.state.terms[quota_id] = terms.model_copy(
            update={"amount": terms.amount - amount}
        )
        self.state.ownership[new_id] = recipient
        self.state.terms[new_id] = new_terms
        self.state.usage[new_id] = QuotaUsage(used=0, last_updated=ctx.now)
        self.state.next_quota_id = new_id + 1

        self._commit(action, ctx, {
            "quota_id": quota_id,
            "new_quota_id": new_id,
            "amount": amount,
            "recipient": recipient,
        })
        logger.info(
            "Quota split: id=%d -> new id=%d amount=%d owner=%s",
            quota_id, new_id, amount, recipient,
        )
        return OperationResult.accept(new_id)

    # ── Read-only accessors ─────────────────────────────────────

    def get_owner(self, quota_id: int) -> str | None:
        return self._owner_of(quota_id)

    def get_terms(self, quota_id: int) -> QuotaTerms | None:
        return self._terms_of(quota_id)

    def get_usage(self, quota_id: int) -> QuotaUsage | None:
        return self._usage_of(quota_id)

    def get_pool_total(self, pool_id: str) -> int:
        return self.state.pool_totals.get(pool_id, 0)

    def peek_next_id(self) -> int:
        return self.state.next_quota_id

    def is_expired(self, quota_id: int, now: int) -> OperationResult:
        terms = self._terms_of(quota_id)
        if terms is None:
            return OperationResult.reject(ErrorCode.QUOTA_NOT_FOUND)
        return OperationResult.accept(terms.is_expired_at(now))

    def snapshot(self) -> LedgerState:
        """Deep copy of the current state."""
        with self._lock:
            return self.state.model_copy(deep=True)

    # ── Internal ────────────────────────────────────────────────

    def _commit(
        self, action: LedgerAction, ctx: CallContext, content: dict[str, Any]
    ) -> None:
        if self.journal is not None:
            self.journal.append(
                operation=action.value,
                sender=ctx.sender,
                height=ctx.now,
                content=content,
            )

    @staticmethod
    def _reject(
        action: LedgerAction, ctx: CallContext, code: ErrorCode
    ) -> OperationResult:
        logger.info(
            "Rejected %s: code=%d (%s) sender=%s height=%d",
            action.value, code.value, code.name, ctx.sender, ctx.now,
        )
        return OperationResult.reject(code)
