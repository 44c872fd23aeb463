from opd_tokens.db.connection import _run_cli

_run_cli()
