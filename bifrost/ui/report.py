#!/usr/bin/env python3
"""
BIFROST - Terminal Reports

Rich renderables for what the CLI prints once a command finishes:
the saved lookup table and the outcome of each submitted bundle.
"""

from collections.abc import Sequence
from typing import Optional

from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from solders.pubkey import Pubkey

from bifrost.bundle.submitter import BundleOutcome, BundleResult

OUTCOME_STYLES = {
    BundleOutcome.ACCEPTED: "bold green",
    BundleOutcome.DROPPED: "bold red",
    BundleOutcome.TIMED_OUT: "bold yellow",
    BundleOutcome.ERROR: "bold magenta",
}

MAX_ADDRESS_ROWS = 20


def lookup_table_panel(table: Pubkey, addresses: Optional[Sequence[Pubkey]]) -> Panel:
    """Table address plus (the first few of) its entries."""
    if addresses is None:
        body = Text("not found on-chain", style="bold red")
        return Panel(body, title=f"[bold bright_white]Lookup table {table}[/]", border_style="red")

    grid = Table(show_header=True, header_style="bold cyan", expand=True)
    grid.add_column("#", justify="right", width=4)
    grid.add_column("Address")
    for index, address in enumerate(addresses[:MAX_ADDRESS_ROWS]):
        grid.add_row(str(index), str(address))
    if len(addresses) > MAX_ADDRESS_ROWS:
        grid.add_row("...", f"{len(addresses) - MAX_ADDRESS_ROWS} more")

    return Panel(
        grid,
        title=f"[bold bright_white]Lookup table {table}[/] ({len(addresses)} addresses)",
        border_style="bright_blue",
    )


def results_table(results: Sequence[BundleResult]) -> Table:
    """One row per bundle: outcome, id, slot, reason."""
    table = Table(title="Bundles", header_style="bold cyan")
    table.add_column("#", justify="right", width=4)
    table.add_column("Outcome")
    table.add_column("Bundle id", overflow="fold")
    table.add_column("Slot", justify="right")
    table.add_column("Reason")

    for index, result in enumerate(results, start=1):
        outcome = Text(result.outcome.value.upper(), style=OUTCOME_STYLES[result.outcome])
        table.add_row(
            str(index),
            outcome,
            result.bundle_id or "-",
            str(result.slot) if result.slot is not None else "-",
            result.reason or "",
        )
    return table
