"""
Governance Event Ledger Audit Tool — independent chain integrity verification.

Any member may run this tool to verify that no governance event has been
retroactively altered. It connects directly to the ledger database and
recomputes every hash in the chain.

Usage:
    python -m civitas.ledger.audit
    python -m civitas.ledger.audit --database-url sqlite:///civitas_ledger.db
    python -m civitas.ledger.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time

import structlog
from rich.console import Console
from rich.table import Table

from civitas.config import settings
from civitas.ledger.service import EventLedgerService
from civitas.logs import configure_logging

console = Console()


def run_audit(database_url: str, verbose: bool = False) -> bool:
    """
    Run a full hash chain integrity audit.

    Args:
        database_url: SQLAlchemy connection string.
        verbose: Print a per-entry listing if True.

    Returns:
        True if the chain is valid, False otherwise.
    """
    log = structlog.get_logger(__name__)
    console.print("\n[bold blue]═══ Governance Event Ledger Audit ═══[/bold blue]\n")

    service = EventLedgerService(database_url)

    count = service.get_entry_count()
    console.print(f"  Entries in ledger: [bold]{count}[/bold]")

    if count == 0:
        console.print("[yellow]⚠ Ledger is empty — no entries to verify[/yellow]")
        return True

    console.print("  Verifying hash chain...", end=" ")
    start_time = time.time()

    is_valid, entries_verified, message = service.verify_chain()

    elapsed = time.time() - start_time
    log.info(
        "civitas.ledger.audit.completed",
        valid=is_valid, entries=entries_verified, elapsed_s=round(elapsed, 3),
    )

    if is_valid:
        console.print("[bold green]✓ VALID[/bold green]")
        console.print(f"  Entries verified: [bold]{entries_verified}[/bold]")
        console.print(f"  Verification time: {elapsed:.3f}s")
    else:
        console.print("[bold red]✗ INVALID[/bold red]")
        console.print(f"  Failure at entry: {entries_verified}")
        console.print(f"  Reason: {message}")

    if verbose:
        console.print("\n[bold]Detailed Entry Listing:[/bold]")
        table = Table(show_lines=True)
        table.add_column("Seq", style="cyan", width=6)
        table.add_column("Type", style="green", width=22)
        table.add_column("Block", width=10)
        table.add_column("Caller", style="yellow", width=20)
        table.add_column("Hash (first 16)", style="dim", width=18)
        table.add_column("Payload", width=40)

        for entry in reversed(service.get_latest_entries(limit=count)):
            payload = ", ".join(f"{k}={v}" for k, v in sorted(entry.payload.items()))
            table.add_row(
                str(entry.sequence_number),
                entry.event_type.value,
                str(entry.block_height),
                entry.caller,
                entry.entry_hash[:16] + "...",
                payload[:120],
            )
        console.print(table)

    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_valid


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Civitas governance event ledger integrity auditor"
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show detailed entry listing",
    )
    args = parser.parse_args(argv)

    configure_logging()
    db_url = args.database_url or settings.ledger_database_url
    is_valid = run_audit(db_url, verbose=args.verbose)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
