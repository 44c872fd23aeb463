from __future__ import annotations

import os
from typing import Any

import httpx
import typer
from rich.console import Console

console = Console()
# Error console writes to stderr
error_console = Console(stderr=True)

LOCAL_API_URL = "http://localhost:8000"


def get_api_url() -> str:
    """Get API URL from environment or default."""
    env_url = os.environ.get("OPD_API_URL")
    if env_url:
        return env_url.rstrip("/")
    return LOCAL_API_URL


def request_json(
    method: str,
    url: str,
    *,
    json: dict | None = None,
    timeout: float = 10.0,
) -> Any:
    """Call the API and return the JSON body, exiting with its error detail on failure."""
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.request(method, url, json=json)
    except httpx.HTTPError as exc:
        error_console.print(f"[red]Could not reach API at {url}:[/red] {exc}")
        raise typer.Exit(1)

    if response.status_code >= 400:
        try:
            body = response.json()
        except ValueError:
            body = None
        detail = body.get("detail", response.text) if isinstance(body, dict) else response.text
        if response.status_code == 503:
            retry_after = response.headers.get("Retry-After", "?")
            error_console.print(
                f"[yellow]Temporarily unavailable (retry in {retry_after}s):[/yellow] {detail}"
            )
        else:
            error_console.print(f"[red]Error {response.status_code}:[/red] {detail}")
        raise typer.Exit(1)

    return response.json()
