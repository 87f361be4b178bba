"""LeadRelay CLI: server management and operator tooling.

Usage:
    leadrelay serve                  Start the HTTP API
    leadrelay config show            Show resolved configuration
    leadrelay lease show <id>        Inspect a conversation's lead record
    leadrelay token resolve <token>  Resolve a message-link token
    leadrelay store reclaim          Remove records past their expiry
"""

import logging
import os
from typing import Optional

import typer
from rich.console import Console

from src.cli.config import LeadRelayConfig, load_config
from src.cli.output import format_config, format_lease_record, format_token_payload

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="leadrelay",
    help="Exactly-once lead notifications and message-link tokens",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Configuration management")
lease_app = typer.Typer(help="Inspect lead dedupe leases")
token_app = typer.Typer(help="Message-link tokens")
store_app = typer.Typer(help="Store maintenance")

app.add_typer(config_app, name="config")
app.add_typer(lease_app, name="lease")
app.add_typer(token_app, name="token")
app.add_typer(store_app, name="store")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to leadrelay.yaml config file"
    ),
):
    """LeadRelay CLI."""
    global _config_path
    _config_path = config


def _load_config_or_exit() -> LeadRelayConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


def _prepare_store(cfg: LeadRelayConfig) -> None:
    """Bind the engine to the configured store timeout and create tables."""
    from src.db.connection import configure_engine, init_db

    configure_engine(cfg.store.timeout_seconds)
    init_db()


def _now() -> int:
    from src.db.models import now_epoch_seconds

    return now_epoch_seconds()


# --- Version ---


@app.command()
def version():
    """Show LeadRelay version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        v = pkg_version("leadrelay")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]LeadRelay[/bold] v{v}")


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
):
    """Start the LeadRelay HTTP API with uvicorn."""
    import uvicorn

    cfg = _load_config_or_exit()
    final_host = host or cfg.server.host
    final_port = port or cfg.server.port

    # Propagate config path to the API lifespan so it loads the same config.
    if _config_path:
        os.environ["LEADRELAY_CONFIG_PATH"] = str(_config_path)

    console.print(f"[bold]Starting LeadRelay on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "src.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.server.log_level,
        lifespan="on",
    )


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display resolved configuration."""
    cfg = _load_config_or_exit()
    console.print(format_config(cfg), end="")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file without starting the server."""
    global _config_path
    if config:
        _config_path = config
    cfg = _load_config_or_exit()
    console.print("[green]Config is valid.[/green]")
    console.print(f"  Lease: {cfg.lease.lease_duration_seconds}s")
    console.print(f"  Cooldown: {cfg.lease.error_cooldown_seconds}s")
    console.print(f"  Link TTL: {cfg.message_link.ttl_days}d")


# --- Lease commands ---


@lease_app.command("show")
def lease_show(
    conversation_id: str = typer.Argument(..., help="Conversation id"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show the lead dedupe record for a conversation."""
    from src.db.connection import get_db_context
    from src.errors import TransientStoreError
    from src.services.lead_lease import LeadLeaseManager
    from src.services.record_store import SqlRecordStore

    cfg = _load_config_or_exit()
    _prepare_store(cfg)
    try:
        with get_db_context() as db:
            record = LeadLeaseManager(SqlRecordStore(db), cfg.lease).get(conversation_id)
    except TransientStoreError as e:
        console.print(f"[red]Store unavailable:[/red] {e}")
        raise typer.Exit(1)

    if record is None:
        console.print(f"[yellow]No lead record for {conversation_id}[/yellow]")
        raise typer.Exit(1)
    console.print(format_lease_record(record, _now(), as_json=as_json), end="")


# --- Token commands ---


@token_app.command("resolve")
def token_resolve(
    token: str = typer.Argument(..., help="Message-link token (UUID)"),
    reveal: bool = typer.Option(False, "--reveal", help="Show the full phone number"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Resolve a message-link token the same way the API does."""
    from src.db.connection import get_db_context
    from src.errors import DomainError
    from src.services.message_link import resolve_token
    from src.services.record_store import SqlRecordStore

    _prepare_store(_load_config_or_exit())
    try:
        with get_db_context() as db:
            payload = resolve_token(SqlRecordStore(db), token, _now())
    except DomainError as e:
        console.print(f"[red]{e.code}[/red] ({e.status_code})")
        raise typer.Exit(1)
    console.print(format_token_payload(payload, reveal=reveal, as_json=as_json), end="")


# --- Store commands ---


@store_app.command("reclaim")
def store_reclaim():
    """Physically remove lease and token records past their expiry."""
    from src.db.connection import get_db_context
    from src.errors import TransientStoreError
    from src.services.record_store import SqlRecordStore

    _prepare_store(_load_config_or_exit())
    try:
        with get_db_context() as db:
            removed = SqlRecordStore(db).reclaim_expired(_now())
    except TransientStoreError as e:
        console.print(f"[red]Store unavailable:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"Reclaimed {removed} expired record(s).")


if __name__ == "__main__":
    app()
