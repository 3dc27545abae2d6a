"""Main CLI application module."""

import typer

from .commands import init_db, list_accounts, purge_nonces, serve

app = typer.Typer(
    help="panel-bridge operator CLI",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("init-db")(init_db)
app.command("purge-nonces")(purge_nonces)
app.command("accounts")(list_accounts)
app.command("serve")(serve)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
