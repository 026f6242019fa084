"""
Gateway CLI

Command-line interface for session gateway administration.

Commands:
- create-tables: Create the gateway tables (development; use alembic in production)
- list-clients: List tenants and their durable status
- show-client: Show one tenant with roster counts
- message-logs: Show a tenant's latest logged messages
- purge-credentials: Delete a tenant's stored credentials
- serve: Run the HTTP API
"""

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="gateway-cli",
    help="Session Gateway CLI",
)

console = Console()


def get_persistence():
    """Get persistence gateway bound to DATABASE_URL."""
    from basecore.db import get_sessionmaker
    from session_gateway.persistence.gateway import PersistenceGateway

    return PersistenceGateway(get_sessionmaker())


@app.command()
def create_tables():
    """
    Create all gateway tables that do not exist yet.
    """
    from basecore.db import get_engine
    from session_gateway.persistence.models import GatewayBase

    engine = get_engine()
    GatewayBase.metadata.create_all(engine)
    rprint(f"[green]Tables ready on {engine.url.render_as_string(hide_password=True)}[/green]")


@app.command()
def list_clients(
    status: Optional[str] = typer.Option(None, help="Filter by status (ready, disconnected, logged_out)"),
):
    """
    List tenants known to the gateway.
    """
    from session_gateway.persistence.models import ClientStatus

    if status:
        try:
            status = ClientStatus(status).value
        except ValueError:
            rprint(f"[red]Unknown status: {status}[/red]")
            raise typer.Exit(1)

    clients = get_persistence().query(lambda repo: repo.list_clients(status=status))

    if not clients:
        rprint("[yellow]No clients found[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Clients")
    table.add_column("Client")
    table.add_column("Status")
    table.add_column("Phone")
    table.add_column("Status Message")
    table.add_column("Updated", style="dim")

    for client in clients:
        table.add_row(
            client.client_id,
            client.status,
            client.phone_number or "-",
            client.status_message or "-",
            client.updated_at.strftime("%Y-%m-%d %H:%M") if client.updated_at else "-",
        )

    console.print(table)


@app.command()
def show_client(
    client_id: str = typer.Argument(..., help="Tenant (client) id"),
):
    """
    Show a tenant's record and roster counts.
    """
    persistence = get_persistence()
    client = persistence.query(lambda repo: repo.get_client(client_id))

    if client is None:
        rprint(f"[yellow]Client {client_id} not found[/yellow]")
        raise typer.Exit(1)

    contacts = persistence.query(lambda repo: repo.list_contacts(client_id))
    chats = persistence.query(lambda repo: repo.list_chats(client_id))

    rprint(f"\n[cyan]Client: {client.client_id}[/cyan]")
    rprint(f"  Status: {client.status}")
    rprint(f"  Phone Number: {client.phone_number or '-'}")
    rprint(f"  Status Message: {client.status_message or '-'}")
    rprint(f"  Contacts: {len(contacts)}")
    rprint(f"  Chats: {len(chats)}")
    rprint(f"  Created: {client.created_at}")


@app.command()
def message_logs(
    client_id: str = typer.Argument(..., help="Tenant (client) id"),
    limit: int = typer.Option(20, help="Maximum number of messages to show"),
):
    """
    Show the latest logged messages of a tenant.
    """
    logs = get_persistence().query(lambda repo: repo.list_message_logs(client_id, limit=limit))

    if not logs:
        rprint("[yellow]No messages found[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Messages for {client_id}")
    table.add_column("Sent", style="dim")
    table.add_column("Number")
    table.add_column("Message")

    for log in logs:
        table.add_row(
            log.sent_at.strftime("%Y-%m-%d %H:%M:%S") if log.sent_at else "-",
            log.number,
            log.message[:80],
        )

    console.print(table)


@app.command()
def purge_credentials(
    client_id: str = typer.Argument(..., help="Tenant (client) id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """
    Delete a tenant's stored credentials (forces a new QR pairing).
    """
    from basecore.settings import get_settings
    from session_gateway.errors import BadRequest
    from session_gateway.persistence.credentials import CredentialStore

    settings = get_settings()
    store = CredentialStore(
        settings.SESSIONS_DIR,
        max_attempts=settings.CREDENTIAL_CLEANUP_ATTEMPTS,
        backoff_seconds=settings.CREDENTIAL_CLEANUP_BACKOFF_SECONDS,
    )

    try:
        path = store.path_for(client_id)
    except BadRequest as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not yes and not typer.confirm(f"Delete {path}?"):
        raise typer.Exit(0)

    if asyncio.run(store.remove(client_id)):
        rprint(f"[green]Credentials removed for {client_id}[/green]")
    else:
        rprint(f"[red]Could not remove {path}[/red]")
        raise typer.Exit(1)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address (default: HOST setting)"),
    port: Optional[int] = typer.Option(None, help="Port (default: PORT setting)"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """
    Run the gateway HTTP API.
    """
    import uvicorn

    from basecore.settings import get_settings

    settings = get_settings()
    uvicorn.run(
        "gateway_api.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=reload,
    )


if __name__ == "__main__":
    app()
