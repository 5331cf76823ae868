"""
Call context — the caller identity and logical time seen by one operation.

The ledger never reads a global clock or an ambient "current user". Hosts
either build a ``CallContext`` themselves or hand a ``Clock`` and an
``IdentitySource`` to a ``LedgerSession``, which samples both exactly once
per call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallContext:
    """Sender identity and clock height for a single operation."""

    sender: str
    now: int

    def __post_init__(self) -> None:
        if isinstance(self.now, bool) or not isinstance(self.now, int) or self.now < 0:
            raise ValueError(f"Clock height must be a non-negative integer: {self.now!r}")

    @classmethod
    def capture(cls, identity: IdentitySource, clock: Clock) -> CallContext:
        return cls(sender=identity.current_sender(), now=clock.current_height())


@runtime_checkable
class Clock(Protocol):
    """Supplies the current logical height. Must never decrease."""

    def current_height(self) -> int: ...


@runtime_checkable
class IdentitySource(Protocol):
    """Supplies the identity of whoever is invoking the next operation."""

    def current_sender(self) -> str: ...


class ManualClock:
    """A clock advanced explicitly by the host (or by tests)."""

    def __init__(self, height: int = 0) -> None:
        if height < 0:
            raise ValueError(f"Clock height cannot be negative: {height}")
        self._height = height

    def current_height(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError(f"Clock cannot move backwards (advance by {blocks})")
        self._height += blocks
        return self._height

    def set(self, height: int) -> None:
        if height < self._height:
            raise ValueError(
                f"Clock cannot move backwards: {height} < {self._height}"
            )
        self._height = height


class StaticIdentity:
    """Identity source that reports whichever sender was last assigned."""

    def __init__(self, sender: str) -> None:
        self.sender = sender

    def current_sender(self) -> str:
        return self.sender

    def switch(self, sender: str) -> None:
        logger.debug("Identity switched: %s -> %s", self.sender, sender)
        self.sender = sender
