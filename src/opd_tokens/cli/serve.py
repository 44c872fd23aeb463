from __future__ import annotations

from typing import Annotated, Optional

import typer

from opd_tokens.cli.config import console


def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="API host")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="API port")] = None,
    reload: Annotated[
        bool, typer.Option("--reload", help="Auto-reload on code changes")
    ] = False,
):
    """Run the allocation API server."""
    from opd_tokens.api import run_server

    console.print("[bold]Starting OPD token API...[/bold]")
    run_server(host=host, port=port, reload=reload)
