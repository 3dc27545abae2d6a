"""Operator commands for the panel bridge database and server."""

import os
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from panel_bridge.core.errors import StorageError
from panel_bridge.core.services.database.db_manage import create_all
from panel_bridge.core.services.database.db_session import DbSessionService
from panel_bridge.core.storage.identity_store import SqlIdentityStore
from panel_bridge.core.storage.nonce_store import SqlNonceStore
from panel_bridge.runtime.config.config_data import ConfigData
from panel_bridge.runtime.config.config_template import load_templated_yaml
from panel_bridge.runtime.context import get_config, set_config

console = Console()

ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to config.yaml (defaults to the process configuration)"
)


def load_config(config_path: Path | None) -> ConfigData:
    """Load ``config_path`` if given and make it the process configuration."""
    if config_path is None:
        return get_config()
    try:
        config = load_templated_yaml(config_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]❌ Failed to load configuration: {e}[/red]")
        raise typer.Exit(code=1) from e
    set_config(config)
    return config


def init_db(config_path: Path | None = ConfigOption) -> None:
    """Create the accounts, users and nonces tables."""
    config = load_config(config_path)
    database_service = DbSessionService(config.database)
    try:
        create_all(database_service)
    finally:
        database_service.dispose()
    console.print("[green]✅ Database tables created[/green]")


def purge_nonces(config_path: Path | None = ConfigOption) -> None:
    """Delete nonce records older than the validity window."""
    config = load_config(config_path)
    database_service = DbSessionService(config.database)
    store = SqlNonceStore(database_service, config.security.nonce_window_seconds)
    try:
        removed = store.purge_expired()
    except StorageError as e:
        console.print(f"[red]❌ Failed to purge nonces: {e}[/red]")
        raise typer.Exit(code=1) from e
    finally:
        database_service.dispose()
    console.print(f"[green]Purged {removed} expired nonce(s)[/green]")


def list_accounts(config_path: Path | None = ConfigOption) -> None:
    """List local accounts and the partner identifiers they are mapped to."""
    config = load_config(config_path)
    database_service = DbSessionService(config.database)
    try:
        accounts = SqlIdentityStore(database_service).list_accounts()
    except StorageError as e:
        console.print(f"[red]❌ Failed to list accounts: {e}[/red]")
        raise typer.Exit(code=1) from e
    finally:
        database_service.dispose()

    if not accounts:
        console.print("[yellow]No accounts found[/yellow]")
        return

    table = Table(title="Accounts")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Admin Email", style="blue")
    table.add_column("External ID", style="magenta")

    for account in accounts:
        table.add_row(
            str(account.id),
            account.account_name or "",
            account.admin_email or "",
            account.external_id or "[dim]unmapped[/dim]",
        )

    console.print(table)
    console.print(f"\n[green]Found {len(accounts)} accounts[/green]")


def serve(
    config_path: Path | None = ConfigOption,
    host: str | None = typer.Option(None, "--host", help="Bind address (defaults to app.host)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (defaults to app.port)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the panel endpoints under uvicorn."""
    import uvicorn

    config = load_config(config_path)
    if config_path is not None:
        # the app module loads its configuration on import, possibly in a reloader process
        os.environ["PANEL_BRIDGE_CONFIG"] = str(config_path)
    uvicorn.run(
        "panel_bridge.api.http.app:app",
        host=host or config.app.host,
        port=port or config.app.port,
        reload=reload,
        access_log=False,
    )
