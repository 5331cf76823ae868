"""
Transition Journal — append-only, hash-chained record of committed transitions.

Every transition the engine commits is appended here. Rejected operations
leave no trace. The journal provides:

1. Append-only writes with automatic hash chain computation
2. Full-chain verification (recompute every hash, check every link)
3. Queries by quota, by operation, and most-recent-first

Hash = SHA-256(previous_hash || canonical_json(entry_fields)). Any later
edit to an entry's fields is detected by recomputing its hash.
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════
# Genesis Constants
# ════════════════════════════════════════════════════════════════

GENESIS_HASH = "0" * 64  # The "previous hash" for the first entry in the chain
GENESIS_OPERATION = "genesis"
SYSTEM_SENDER = "system"


class LedgerIntegrityError(Exception):
    """Raised when the hash chain integrity check fails."""
    pass


class JournalEntry(BaseModel):
    """A single committed transition."""

    sequence_number: int = Field(description="Monotonically increasing sequence number")
    operation: str = Field(description="Name of the committed operation")
    sender: str = Field(description="Identity that invoked the operation")
    height: int = Field(description="Clock height at commit")
    content: dict[str, Any] = Field(
        default_factory=dict, description="Operation arguments and outcome"
    )
    previous_hash: str = Field(description="SHA-256 hash of the previous entry")
    entry_hash: str = Field(default="", description="SHA-256 hash of this entry")

    def compute_hash(self) -> str:
        """Compute the SHA-256 hash of this entry from its fields."""
        hashable = {
            "sequence_number": self.sequence_number,
            "operation": self.operation,
            "sender": self.sender,
            "height": self.height,
            "content": self.content,
            "previous_hash": self.previous_hash,
        }
        canonical = json.dumps(hashable, sort_keys=True, default=str)
        return hashlib.sha256(
            (self.previous_hash + canonical).encode("utf-8")
        ).hexdigest()

    def touches(self, quota_id: int) -> bool:
        return quota_id in (
            self.content.get("quota_id"),
            self.content.get("new_quota_id"),
        )


class TransitionJournal:
    """
    In-process journal of ledger transitions.

    Usage:
        journal = TransitionJournal()
        journal.append("mint", sender="admin", height=10, content={...})
        is_valid, verified, message = journal.verify_chain()
    """

    def __init__(self) -> None:
        self._entries: list[JournalEntry] = []
        self._append_genesis()

    def _append_genesis(self) -> None:
        genesis = JournalEntry(
            sequence_number=0,
            operation=GENESIS_OPERATION,
            sender=SYSTEM_SENDER,
            height=0,
            content={"message": "Quota ledger journal opened"},
            previous_hash=GENESIS_HASH,
        )
        genesis = genesis.model_copy(update={"entry_hash": genesis.compute_hash()})
        self._entries.append(genesis)

    def append(
        self,
        operation: str,
        sender: str,
        height: int,
        content: dict[str, Any] | None = None,
    ) -> JournalEntry:
        """
        Append a committed transition. This is the ONLY write operation.

        Returns:
            The newly created JournalEntry.
        """
        last = self._entries[-1]
        entry = JournalEntry(
            sequence_number=last.sequence_number + 1,
            operation=operation,
            sender=sender,
            height=height,
            content=dict(content or {}),
            previous_hash=last.entry_hash,
        )
        entry = entry.model_copy(update={"entry_hash": entry.compute_hash()})
        self._entries.append(entry)

        logger.debug(
            "Journal entry appended: seq=%d op=%s hash=%s",
            entry.sequence_number, operation, entry.entry_hash[:16],
        )
        return entry

    def verify_chain(self) -> tuple[bool, int, str]:
        """
        Walk every entry from genesis forward, recomputing each hash.

        Returns:
            Tuple of (is_valid, entries_verified, message).
        """
        entries = self._entries
        if not entries:
            return False, 0, "No entries found in journal"

        first = entries[0]
        if first.sequence_number != 0:
            return False, 0, f"First entry has sequence {first.sequence_number}, expected 0"
        if first.previous_hash != GENESIS_HASH:
            return False, 0, "Genesis entry has incorrect previous_hash"

        for i, entry in enumerate(entries):
            expected_hash = entry.compute_hash()
            if entry.entry_hash != expected_hash:
                return (
                    False, i,
                    f"Hash mismatch at sequence {entry.sequence_number}: "
                    f"stored={entry.entry_hash[:16]}... "
                    f"computed={expected_hash[:16]}..."
                )
            if i > 0 and entry.previous_hash != entries[i - 1].entry_hash:
                return (
                    False, i,
                    f"Chain break at sequence {entry.sequence_number}: "
                    f"previous_hash does not match prior entry's hash"
                )
            if i > 0 and entry.sequence_number != entries[i - 1].sequence_number + 1:
                return (
                    False, i,
                    f"Sequence gap before {entry.sequence_number}"
                )

        return True, len(entries), f"Chain verified: {len(entries)} entries, integrity intact"

    def ensure_intact(self) -> None:
        """Raise LedgerIntegrityError if the chain does not verify."""
        is_valid, _, message = self.verify_chain()
        if not is_valid:
            logger.critical("JOURNAL INTEGRITY FAILURE: %s", message)
            raise LedgerIntegrityError(message)

    # ── Queries ─────────────────────────────────────────────────

    def entries(self) -> list[JournalEntry]:
        return list(self._entries)

    def get_by_sequence(self, sequence_number: int) -> JournalEntry | None:
        if 0 <= sequence_number < len(self._entries):
            return self._entries[sequence_number]
        return None

    def entries_for_quota(self, quota_id: int) -> list[JournalEntry]:
        """Entries that touched ``quota_id``, oldest first."""
        return [e for e in self._entries if e.touches(quota_id)]

    def entries_by_operation(self, operation: str) -> list[JournalEntry]:
        return [e for e in self._entries if e.operation == operation]

    def latest(self, limit: int = 50) -> list[JournalEntry]:
        """Most recent entries, newest first."""
        return list(reversed(self._entries[-limit:])) if limit > 0 else []

    @property
    def head_hash(self) -> str:
        return self._entries[-1].entry_hash

    def __len__(self) -> int:
        return len(self._entries)
