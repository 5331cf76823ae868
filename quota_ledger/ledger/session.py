"""
Ledger Session — a ledger engine bound to its clock and identity source.

Hosts that already know who is calling and what height it is can talk to
``LedgerEngine`` directly with a ``CallContext``. Everything else goes
through a session, which samples both collaborators exactly once at the
start of each call and hands the resulting context to the engine.
"""

from __future__ import annotations

from quota_ledger.context import CallContext, Clock, IdentitySource
from quota_ledger.ledger.engine import LedgerEngine
from quota_ledger.ledger.models import OperationResult, QuotaTerms, QuotaUsage


class LedgerSession:
    """Collaborator-bound view of a ``LedgerEngine``."""

    def __init__(
        self, engine: LedgerEngine, clock: Clock, identity: IdentitySource
    ) -> None:
        self.engine = engine
        self.clock = clock
        self.identity = identity

    def context(self) -> CallContext:
        return CallContext.capture(self.identity, self.clock)

    # ── Administrative ──────────────────────────────────────────

    def set_admin(self, new_admin: str) -> OperationResult:
        return self.engine.set_admin(self.context(), new_admin)

    def set_oracle(self, new_oracle: str | None) -> OperationResult:
        return self.engine.set_oracle(self.context(), new_oracle)

    def set_pool_cap(self, cap: int) -> OperationResult:
        return self.engine.set_pool_cap(self.context(), cap)

    def freeze_all(self) -> OperationResult:
        return self.engine.freeze_all(self.context())

    def unfreeze_all(self) -> OperationResult:
        return self.engine.unfreeze_all(self.context())

    # ── Transitions ─────────────────────────────────────────────

    def mint(
        self,
        recipient: str,
        pool_id: str,
        amount: int,
        expiration: int,
        transferable: bool = True,
        burnable: bool = True,
        fractional_allowed: bool = True,
    ) -> OperationResult:
        return self.engine.mint(
            self.context(),
            recipient,
            pool_id,
            amount,
            expiration,
            transferable,
            burnable,
            fractional_allowed,
        )

    def transfer(self, quota_id: int, new_owner: str) -> OperationResult:
        return self.engine.transfer(self.context(), quota_id, new_owner)

    def burn(self, quota_id: int, amount: int) -> OperationResult:
        return self.engine.burn(self.context(), quota_id, amount)

    def report_usage(self, quota_id: int, used_delta: int) -> OperationResult:
        return self.engine.report_usage(self.context(), quota_id, used_delta)

    def lock(self, quota_id: int) -> OperationResult:
        return self.engine.lock(self.context(), quota_id)

    def unlock(self, quota_id: int) -> OperationResult:
        return self.engine.unlock(self.context(), quota_id)

    def split(self, quota_id: int, amount: int, recipient: str) -> OperationResult:
        return self.engine.split(self.context(), quota_id, amount, recipient)

    # ── Read-only ───────────────────────────────────────────────

    def get_owner(self, quota_id: int) -> str | None:
        return self.engine.get_owner(quota_id)

    def get_terms(self, quota_id: int) -> QuotaTerms | None:
        return self.engine.get_terms(quota_id)

    def get_usage(self, quota_id: int) -> QuotaUsage | None:
        return self.engine.get_usage(quota_id)

    def peek_next_id(self) -> int:
        return self.engine.peek_next_id()

    def is_expired(self, quota_id: int) -> OperationResult:
        return self.engine.is_expired(quota_id, self.clock.current_height())
