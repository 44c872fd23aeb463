from __future__ import annotations

from typing import Annotated

import typer

from opd_tokens.cli.config import console, get_api_url, request_json
from opd_tokens.db.models import TokenSource


def _print_allocation(result: dict) -> None:
    token = result["token"]
    console.print(f"[green]✓[/green] {result['message']}")
    console.print(
        f"  token [bold]{token['id']}[/bold] {token['source']} "
        f"(priority {token['priority']}) in slot {token['slot_id']}"
    )
    if result.get("bumped_token_id"):
        console.print(
            f"  [yellow]bumped[/yellow] token {result['bumped_token_id']} "
            f"to slot {result['bumped_to_slot_id']}"
        )


def book(
    doctor_id: Annotated[str, typer.Argument(help="Doctor ID")],
    slot_id: Annotated[str, typer.Argument(help="Slot ID")],
    source: Annotated[
        TokenSource,
        typer.Option("--source", "-s", help="Booking channel", case_sensitive=False),
    ] = TokenSource.WALK_IN,
    api_url: Annotated[str, typer.Option("--api", help="API URL")] = "",
):
    """Book a token into a doctor's slot.

    Examples:
        opd book <doctor_id> <slot_id> --source PAID
    """
    api_url = api_url or get_api_url()
    result = request_json(
        "POST",
        f"{api_url}/api/tokens",
        json={"doctor_id": doctor_id, "slot_id": slot_id, "source": source.value},
    )
    _print_allocation(result)


def emergency(
    doctor_id: Annotated[str, typer.Argument(help="Doctor ID")],
    slot_id: Annotated[str, typer.Argument(help="Slot ID")],
    api_url: Annotated[str, typer.Option("--api", help="API URL")] = "",
):
    """Book an emergency token (always admitted)."""
    api_url = api_url or get_api_url()
    result = request_json(
        "POST",
        f"{api_url}/api/tokens/emergency",
        json={"doctor_id": doctor_id, "slot_id": slot_id},
    )
    _print_allocation(result)


def cancel(
    token_id: Annotated[str, typer.Argument(help="Token ID to cancel")],
    api_url: Annotated[str, typer.Option("--api", help="API URL")] = "",
):
    """Cancel a token; a later waiting token may be pulled into its place."""
    api_url = api_url or get_api_url()
    result = request_json("PATCH", f"{api_url}/api/tokens/{token_id}/cancel")
    console.print(f"[green]✓[/green] {result['message']}: {result['token']['id']}")
    if result.get("pulled_token_id"):
        console.print(
            f"  [cyan]pulled forward[/cyan] token {result['pulled_token_id']} "
            f"from slot {result['pulled_from_slot_id']}"
        )
