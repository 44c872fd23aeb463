from __future__ import annotations

from rich.console import Console
from rich.table import Table

_STATUS_STYLES = {
    "ACTIVE": "green",
    "CANCELLED": "dim",
    "NO_SHOW": "yellow",
}


def _hhmm(value: str) -> str:
    return value[:5]


def print_schedule(console: Console, schedule: dict) -> None:
    """Render a doctor's day as one table row per slot."""
    doctor = schedule["doctor"]
    console.print(
        f"[bold]{doctor['name']}[/bold] [dim]({doctor['department']}, {doctor['id']})[/dim]"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Slot")
    table.add_column("Time")
    table.add_column("Load", justify="right")
    table.add_column("Tokens")

    for slot in schedule["slots"]:
        load = f"{slot['current_count']}/{slot['max_capacity']}"
        if slot["current_count"] >= slot["max_capacity"]:
            load = f"[red]{load}[/red]"
        token_cells = []
        for token in slot["tokens"]:
            style = _STATUS_STYLES.get(token["status"], "white")
            token_cells.append(
                f"[{style}]{token['id']} {token['source']}·p{token['priority']}[/{style}]"
            )
        table.add_row(
            slot["id"],
            f"{_hhmm(slot['start_time'])}-{_hhmm(slot['end_time'])}",
            load,
            "\n".join(token_cells) or "[dim]-[/dim]",
        )

    console.print(table)
