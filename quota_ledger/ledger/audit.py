"""
Quota Ledger Audit — independent verification of a live ledger.

Recomputes every hash in the transition journal and re-checks the state
invariants the engine is supposed to maintain:

- ownership, terms and usage share one key set
- amounts and usage are non-negative
- every issued pool has a running total
- the id counter is above every id in use

Pool totals above the current cap are reported as warnings, not failures:
the cap is only enforced at mint time and may be lowered afterwards.

Results are rendered with rich. This is a library routine for hosts and
tests; it has no command-line entrypoint.
"""

from __future__ import annotations

import time

from rich.console import Console
from rich.table import Table

from quota_ledger.ledger.engine import LedgerEngine
from quota_ledger.ledger.models import LedgerState


def check_invariants(state: LedgerState) -> list[str]:
    """Return a description of every invariant violation found (empty if none)."""
    problems: list[str] = []

    owned = set(state.ownership)
    if owned != set(state.terms) or owned != set(state.usage):
        problems.append(
            "Key sets differ: "
            f"ownership={sorted(owned)} terms={sorted(state.terms)} "
            f"usage={sorted(state.usage)}"
        )

    for quota_id, terms in state.terms.items():
        if terms.amount < 0:
            problems.append(f"Quota {quota_id} has negative amount {terms.amount}")
        if terms.pool_id not in state.pool_totals:
            problems.append(f"Quota {quota_id} draws from untracked pool {terms.pool_id!r}")

    for quota_id, usage in state.usage.items():
        if usage.used < 0:
            problems.append(f"Quota {quota_id} has negative usage {usage.used}")

    if owned and state.next_quota_id <= max(owned):
        problems.append(
            f"Id counter {state.next_quota_id} does not exceed highest id {max(owned)}"
        )

    return problems


def pool_cap_warnings(state: LedgerState) -> list[str]:
    """Pools whose issued total is above the current cap."""
    return [
        f"Pool {pool_id!r} issued {total} exceeds current cap {state.pool_cap}"
        for pool_id, total in sorted(state.pool_totals.items())
        if total > state.pool_cap
    ]


def run_audit(
    engine: LedgerEngine,
    console: Console | None = None,
    verbose: bool = False,
) -> bool:
    """
    Run a full audit of ``engine``.

    Args:
        engine: The ledger to audit.
        console: Where to render the report. Defaults to stdout.
        verbose: Also list every quota and every journal entry.

    Returns:
        True if the journal verifies and no invariant is violated.
    """
    console = console or Console()
    console.print("\n[bold blue]═══ Quota Ledger Audit ═══[/bold blue]")

    state = engine.snapshot()
    console.print(f"  Quotas issued: [bold]{len(state.ownership)}[/bold]")
    console.print(f"  Next quota id: [bold]{state.next_quota_id}[/bold]")
    console.print(f"  Ledger frozen: [bold]{'yes' if state.frozen else 'no'}[/bold]")

    start_time = time.perf_counter()

    chain_valid = True
    if engine.journal is None:
        console.print("[yellow]⚠ Journal disabled, skipping chain verification[/yellow]")
    else:
        console.print("  Verifying journal chain...", end=" ")
        chain_valid, entries_verified, message = engine.journal.verify_chain()
        if chain_valid:
            console.print("[bold green]✓ VALID[/bold green]")
            console.print(f"  Entries verified: [bold]{entries_verified}[/bold]")
        else:
            console.print("[bold red]✗ INVALID[/bold red]")
            console.print(f"  Failure at entry: {entries_verified}")
            console.print(f"  Reason: {message}")

    problems = check_invariants(state)
    if problems:
        console.print("[bold red]✗ Invariant violations:[/bold red]")
        for problem in problems:
            console.print(f"    - {problem}")
    else:
        console.print("  State invariants: [bold green]✓ HOLD[/bold green]")

    for warning in pool_cap_warnings(state):
        console.print(f"[yellow]⚠ {warning}[/yellow]")

    elapsed = time.perf_counter() - start_time
    console.print(f"  Verification time: {elapsed:.3f}s")

    pools = Table(title="Pool totals")
    pools.add_column("Pool", style="cyan")
    pools.add_column("Issued", justify="right")
    pools.add_column("Cap", justify="right", style="dim")
    for pool_id, total in sorted(state.pool_totals.items()):
        pools.add_row(pool_id, str(total), str(state.pool_cap))
    console.print(pools)

    if verbose:
        quotas = Table(title="Quotas", show_lines=True)
        quotas.add_column("Id", style="cyan", width=6)
        quotas.add_column("Owner", style="yellow")
        quotas.add_column("Pool", style="green")
        quotas.add_column("Amount", justify="right")
        quotas.add_column("Used", justify="right")
        quotas.add_column("Expires", justify="right")
        quotas.add_column("Flags", width=12)
        for quota_id in sorted(state.ownership):
            terms = state.terms.get(quota_id)
            usage = state.usage.get(quota_id)
            if terms is None:
                continue
            flags = "".join([
                "T" if terms.transferable else "-",
                "B" if terms.burnable else "-",
                "F" if terms.fractional_allowed else "-",
                "L" if terms.locked else "-",
            ])
            quotas.add_row(
                str(quota_id),
                state.ownership[quota_id],
                terms.pool_id,
                str(terms.amount),
                str(usage.used if usage else 0),
                str(terms.expiration_height),
                flags,
            )
        console.print(quotas)

        if engine.journal is not None:
            journal = Table(title="Journal", show_lines=True)
            journal.add_column("Seq", style="cyan", width=6)
            journal.add_column("Operation", style="green")
            journal.add_column("Sender", style="yellow")
            journal.add_column("Height", justify="right")
            journal.add_column("Hash (first 16)", style="dim", width=18)
            for entry in engine.journal.entries():
                journal.add_row(
                    str(entry.sequence_number),
                    entry.operation,
                    entry.sender,
                    str(entry.height),
                    entry.entry_hash[:16] + "...",
                )
            console.print(journal)

    is_valid = chain_valid and not problems
    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_valid
