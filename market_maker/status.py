from __future__ import annotations

"""Console rendering of bot status."""

from datetime import datetime
from typing import Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .registry import BotStatus
from .utils.logger import short_key

STATE_STYLES = {
    "awaiting_cycle": "cyan",
    "executing": "green",
    "cooling": "yellow",
    "recycle_needed": "magenta",
    "stopped": "dim",
    "inactive": "dim",
}


def format_timestamp(ts: Optional[float]) -> str:
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%H:%M:%S")


def build_table(statuses: Iterable[BotStatus], title: str = "Active bots") -> Table:
    """Return a :class:`rich.table.Table` with one row per bot."""
    table = Table(title=title)
    table.add_column("Account")
    table.add_column("Wallet")
    table.add_column("State")
    table.add_column("Cycles", justify="right")
    table.add_column("Last action")
    table.add_column("Settings")
    table.add_column("Last error")
    for status in statuses:
        style = STATE_STYLES.get(status.state, "")
        cycles = (
            f"{status.cycles_completed}/{status.cycles_before_recycle}"
            if status.cycles_before_recycle
            else str(status.cycles_completed)
        )
        table.add_row(
            status.account_id[:8],
            short_key(status.public_key),
            f"[{style}]{status.state}[/]" if style else status.state,
            cycles,
            format_timestamp(status.last_action_time),
            "custom" if status.use_custom_settings else "global",
            escape(status.last_error or ""),
        )
    return table


def print_status(
    statuses: Iterable[BotStatus],
    console: Optional[Console] = None,
    footer: str = "",
) -> None:
    console = console or Console()
    console.print(build_table(statuses))
    if footer:
        console.print(f"[dim]{escape(footer)}[/]")
