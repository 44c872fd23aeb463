from __future__ import annotations

from typing import Annotated, Optional

import typer

from opd_tokens.cli.config import console, get_api_url, request_json
from opd_tokens.cli.render import print_schedule


def schedule(
    doctor_id: Annotated[
        Optional[str],
        typer.Argument(help="Doctor ID (omit to show every doctor)"),
    ] = None,
    api_url: Annotated[str, typer.Option("--api", help="API URL")] = "",
):
    """Show a doctor's slots and tokens.

    Examples:
        opd schedule              # Every doctor
        opd schedule <doctor_id>  # One doctor
    """
    api_url = api_url or get_api_url()
    if doctor_id:
        doctor_ids = [doctor_id]
    else:
        doctor_ids = [d["id"] for d in request_json("GET", f"{api_url}/api/doctors")]
        if not doctor_ids:
            console.print("[dim]No doctors registered.[/dim]")
            return

    for ident in doctor_ids:
        print_schedule(
            console, request_json("GET", f"{api_url}/api/doctors/{ident}/slots")
        )


def simulate(
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt"),
    ] = False,
    api_url: Annotated[str, typer.Option("--api", help="API URL")] = "",
):
    """Wipe ALL data and replay the demo day."""
    if not yes and not typer.confirm("This deletes every doctor, slot and token. Continue?"):
        raise typer.Exit(0)

    api_url = api_url or get_api_url()
    result = request_json("POST", f"{api_url}/api/simulate/day", timeout=30.0)
    console.print(
        f"[green]✓[/green] Simulated day: {len(result['doctors'])} doctors, "
        f"{len(result['slots'])} slots, {len(result['tokens'])} tokens"
    )
    for doctor in result["doctors"]:
        schedule_data = request_json(
            "GET", f"{api_url}/api/doctors/{doctor['id']}/slots"
        )
        print_schedule(console, schedule_data)
