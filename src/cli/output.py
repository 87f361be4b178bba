"""CLI output formatters for Rich panels and JSON.

Provides human-readable Rich output (default) and machine-parseable JSON
output (--json flag). All formatting goes through these functions so the
CLI commands stay clean. Private values are masked unless the caller
explicitly asks to reveal them.
"""

import dataclasses
import json
from datetime import UTC, datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.cli.config import LeadRelayConfig
from src.services.message_link import TokenPayload
from src.services.record_store import LeaseRecord
from src.utils.redaction import mask_phone

console = Console()

# Status color map
STATUS_COLORS = {
    "leased": "blue",
    "sent": "green",
    "error": "red",
}


def format_epoch(value: int | None) -> str:
    """Format epoch seconds as a UTC timestamp.

    Args:
        value: Epoch seconds, or None.

    Returns:
        String like "2026-01-31 18:04:05Z" or "—" for None.
    """
    if value is None:
        return "—"
    return datetime.fromtimestamp(value, UTC).strftime("%Y-%m-%d %H:%M:%SZ")


def describe_lease_state(record: LeaseRecord, now: int) -> str:
    """Human-readable effective state, accounting for elapsed windows."""
    status = record.status.value
    if not record.is_retained(now):
        return "expired (reads as none)"
    if status == "leased" and record.lease_expires_at is not None:
        if record.lease_expires_at <= now:
            return "leased (lease expired, acquirable)"
        return f"leased ({record.lease_expires_at - now}s left)"
    if status == "error" and record.error_cooldown_until is not None:
        if record.error_cooldown_until <= now:
            return "error (cooldown over, acquirable)"
        return f"error (cooling down, {record.error_cooldown_until - now}s left)"
    return status


def format_lease_record(record: LeaseRecord, now: int, as_json: bool = False) -> str:
    """Format a lead dedupe record as a Rich panel or JSON.

    Args:
        record: Stored lease record.
        now: Current epoch seconds, for effective-state display.
        as_json: If True, return JSON string instead of Rich panel.

    Returns:
        Formatted string output.
    """
    if as_json:
        data = dataclasses.asdict(record)
        data["status"] = record.status.value
        return json.dumps(data, indent=2)

    status_color = STATUS_COLORS.get(record.status.value, "white")
    state = describe_lease_state(record, now)

    lines = [
        f"[bold]Conversation:[/bold] {record.conversation_id}",
        f"[bold]Status:[/bold]       [{status_color}]{state}[/{status_color}]",
        f"[bold]Attempts:[/bold]     {record.attempts}",
        f"[bold]Reason:[/bold]       {record.last_reason or '—'}",
        f"[bold]Message ID:[/bold]   {record.message_id or '—'}",
        "",
        f"[bold]Created:[/bold]      {format_epoch(record.created_at)}",
        f"[bold]Updated:[/bold]      {format_epoch(record.updated_at)}",
        f"[bold]Sent:[/bold]         {format_epoch(record.sent_at)}",
        f"[bold]Lease until:[/bold]  {format_epoch(record.lease_expires_at)}",
        f"[bold]Cooldown to:[/bold]  {format_epoch(record.error_cooldown_until)}",
        f"[bold]Retained to:[/bold]  {format_epoch(record.record_expiry_at)}",
    ]

    if record.last_error:
        lines.append("")
        lines.append(f"[bold red]Last error:[/bold red] {record.last_error}")

    with console.capture() as capture:
        console.print(Panel("\n".join(lines), title="Lead Record", border_style="cyan"))
    return capture.get()


def format_token_payload(payload: TokenPayload, reveal: bool = False, as_json: bool = False) -> str:
    """Format a resolved message-link payload.

    Args:
        payload: Resolved token payload.
        reveal: Show the full phone number instead of the last four digits.
        as_json: If True, return JSON string.

    Returns:
        Formatted string output.
    """
    to_phone = payload.to_phone if reveal else mask_phone(payload.to_phone)
    if as_json:
        return json.dumps({"ok": True, "to_phone": to_phone, "body": payload.body}, indent=2)

    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("To", to_phone)
    table.add_row("Body", payload.body or "—")

    with console.capture() as capture:
        console.print(table)
    return capture.get()


def format_config(cfg: LeadRelayConfig) -> str:
    """Format resolved configuration as a Rich table, one row per setting."""
    table = Table(title="LeadRelay Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Key")
    table.add_column("Value")

    for section_name, section in cfg.model_dump().items():
        for key, value in section.items():
            shown = "—" if value in (None, "") else str(value)
            table.add_row(section_name, key, shown)

    with console.capture() as capture:
        console.print(table)
    return capture.get()
