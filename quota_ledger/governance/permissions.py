"""
Permission Enforcement — who may invoke which ledger transition.

Every mutating ledger operation passes through this engine before any state
is touched. Actions fall into four authority classes:

- ADMIN_ONLY: issuance and ledger-wide switches
- ORACLE_OR_ADMIN: consumption reports
- OWNER_OR_ADMIN: advisory lock toggles
- OWNER_ONLY: moving, consuming or partitioning a quota

The engine answers with a decision and a reason. Mapping a denial onto a
rejection code is the caller's business, since the same denial surfaces
with different codes depending on the operation.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from quota_ledger.ledger.models import LedgerState

logger = logging.getLogger(__name__)


class LedgerAction(str, enum.Enum):
    """Every mutating operation the ledger exposes."""

    SET_ADMIN = "set_admin"
    SET_ORACLE = "set_oracle"
    SET_POOL_CAP = "set_pool_cap"
    FREEZE = "freeze_all"
    UNFREEZE = "unfreeze_all"
    MINT = "mint"
    TRANSFER = "transfer"
    BURN = "burn"
    REPORT_USAGE = "report_usage"
    LOCK = "lock"
    UNLOCK = "unlock"
    SPLIT = "split"


class AuthorityClass(str, enum.Enum):
    """Who may invoke an action."""

    ADMIN_ONLY = "admin_only"
    ORACLE_OR_ADMIN = "oracle_or_admin"
    OWNER_OR_ADMIN = "owner_or_admin"
    OWNER_ONLY = "owner_only"


class PermissionDecision(str, enum.Enum):
    """Result of a permission check."""

    AUTHORIZED = "authorized"
    DENIED = "denied"


ACTION_AUTHORITY: dict[LedgerAction, AuthorityClass] = {
    LedgerAction.SET_ADMIN: AuthorityClass.ADMIN_ONLY,
    LedgerAction.SET_ORACLE: AuthorityClass.ADMIN_ONLY,
    LedgerAction.SET_POOL_CAP: AuthorityClass.ADMIN_ONLY,
    LedgerAction.FREEZE: AuthorityClass.ADMIN_ONLY,
    LedgerAction.UNFREEZE: AuthorityClass.ADMIN_ONLY,
    LedgerAction.MINT: AuthorityClass.ADMIN_ONLY,
    LedgerAction.REPORT_USAGE: AuthorityClass.ORACLE_OR_ADMIN,
    LedgerAction.LOCK: AuthorityClass.OWNER_OR_ADMIN,
    LedgerAction.UNLOCK: AuthorityClass.OWNER_OR_ADMIN,
    LedgerAction.TRANSFER: AuthorityClass.OWNER_ONLY,
    LedgerAction.BURN: AuthorityClass.OWNER_ONLY,
    LedgerAction.SPLIT: AuthorityClass.OWNER_ONLY,
}


@dataclass
class PermissionCheckResult:
    """Result of checking an action against the caller's authority."""

    decision: PermissionDecision
    action: LedgerAction
    sender: str
    reason: str

    @property
    def is_allowed(self) -> bool:
        return self.decision == PermissionDecision.AUTHORIZED


def is_admin(state: LedgerState, sender: str) -> bool:
    return sender == state.admin


def is_oracle(state: LedgerState, sender: str) -> bool:
    return state.oracle is not None and sender == state.oracle


class PermissionEngine:
    """
    Central permission engine for ledger transitions.

    Authority is derived from the live ledger state on every check, so a
    reassigned admin or oracle takes effect on the very next call.
    """

    def __init__(
        self, authority: dict[LedgerAction, AuthorityClass] | None = None
    ) -> None:
        self.authority = authority or dict(ACTION_AUTHORITY)

    def check(
        self,
        action: LedgerAction,
        sender: str,
        state: LedgerState,
        owner: str | None = None,
    ) -> PermissionCheckResult:
        """
        Check whether ``sender`` may perform ``action``.

        Args:
            action: The transition being attempted.
            sender: Identity of the caller.
            state: Current ledger state (admin and oracle are read from it).
            owner: Current owner of the target quota, for owner-scoped actions.

        Returns:
            PermissionCheckResult with decision and reasoning.
        """
        authority = self.authority.get(action)
        if authority is None:
            return self._deny(action, sender, f"No authority rule for {action.value}")

        if authority == AuthorityClass.ADMIN_ONLY:
            if is_admin(state, sender):
                return self._allow(action, sender, "caller is admin")
            return self._deny(action, sender, f"{action.value} requires admin")

        if authority == AuthorityClass.ORACLE_OR_ADMIN:
            if is_oracle(state, sender):
                return self._allow(action, sender, "caller is oracle")
            if is_admin(state, sender):
                return self._allow(action, sender, "caller is admin")
            return self._deny(
                action, sender, f"{action.value} requires the oracle or admin"
            )

        is_owner = owner is not None and sender == owner

        if authority == AuthorityClass.OWNER_OR_ADMIN:
            if is_admin(state, sender):
                return self._allow(action, sender, "caller is admin")
            if is_owner:
                return self._allow(action, sender, "caller owns the quota")
            return self._deny(
                action, sender, f"{action.value} requires the owner or admin"
            )

        if is_owner:
            return self._allow(action, sender, "caller owns the quota")
        return self._deny(action, sender, f"{action.value} requires the owner")

    @staticmethod
    def _allow(action: LedgerAction, sender: str, reason: str) -> PermissionCheckResult:
        return PermissionCheckResult(
            decision=PermissionDecision.AUTHORIZED,
            action=action,
            sender=sender,
            reason=reason,
        )

    @staticmethod
    def _deny(action: LedgerAction, sender: str, reason: str) -> PermissionCheckResult:
        logger.debug("Permission denied: action=%s sender=%s (%s)", action.value, sender, reason)
        return PermissionCheckResult(
            decision=PermissionDecision.DENIED,
            action=action,
            sender=sender,
            reason=reason,
        )
