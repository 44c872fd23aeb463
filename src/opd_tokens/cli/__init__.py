from __future__ import annotations

import typer
from opd_tokens.cli.schedule import schedule, simulate
from opd_tokens.cli.serve import serve
from opd_tokens.cli.tokens import book, cancel, emergency

app = typer.Typer(
    help="OPD Tokens - priority-aware slot allocation for doctors.",
    no_args_is_help=True,
)

app.command()(serve)
app.command()(book)
app.command()(emergency)
app.command()(cancel)
app.command()(schedule)
app.command()(simulate)


if __name__ == "__main__":
    app()
