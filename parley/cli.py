"""Parley CLI: command line interface."""

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from parley import __version__

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="parley")
def cli():
    """Parley: anonymous Telegram relay between users and a staff group"""
    pass


# ── Start ────────────────────────────────────────────────

@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the relay bot."""
    from parley.config import load_settings
    from parley.main import run, setup_logging

    settings = load_settings()
    setup_logging(settings, debug=debug)
    console.print(f"[bold blue]Starting Parley ({settings.transport})...[/bold blue]")
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        pass
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


# ── Database ─────────────────────────────────────────────

async def _with_pool(fn):
    from parley.config import load_settings
    from parley.db.connection import close_db, init_db

    settings = load_settings()
    pool = await init_db(settings.database_url)
    try:
        return await fn(pool)
    finally:
        await close_db(pool)


@cli.group()
def db():
    """Database management commands."""
    pass


@db.command("init")
def db_init():
    """Create the relay tables if missing."""
    from parley.db.connection import ensure_schema

    asyncio.run(_with_pool(ensure_schema))
    console.print("[green]✓ Database schema initialized[/green]")


@db.command("stats")
def db_stats():
    """Show row counts of the relay tables."""
    from parley.db.models import PgBanRegistry, PgMappingStore

    async def _stats(pool):
        return await PgMappingStore(pool).count(), await PgBanRegistry(pool).count()

    forwards, bans = asyncio.run(_with_pool(_stats))
    table = Table(title="Parley database")
    table.add_column("Table", style="bold")
    table.add_column("Rows", justify="right")
    table.add_row("forwards", str(forwards))
    table.add_row("bans", str(bans))
    console.print(table)


# ── Inspection ───────────────────────────────────────────

@cli.command()
@click.argument("group_message_id", type=int)
def lookup(group_message_id):
    """Show which user a group message was relayed from."""
    from parley.db.models import PgMappingStore

    async def _lookup(pool):
        return await PgMappingStore(pool).lookup(group_message_id)

    record = asyncio.run(_with_pool(_lookup))
    if record is None:
        console.print(f"[yellow]No relayed message with group ID {group_message_id}.[/yellow]")
        sys.exit(1)
    console.print(
        f"Group message [bold]{record.group_message_id}[/bold] ← "
        f"user [bold]{record.user_id}[/bold], message {record.user_message_id}"
    )


@cli.command()
def bans():
    """List banned user IDs."""
    from parley.db.models import PgBanRegistry

    async def _list(pool):
        return await PgBanRegistry(pool).list_banned()

    banned = asyncio.run(_with_pool(_list))
    if not banned:
        console.print("[dim]No banned users.[/dim]")
        return
    table = Table(title=f"Banned users ({len(banned)})")
    table.add_column("User ID", justify="right")
    for user_id in banned:
        table.add_row(str(user_id))
    console.print(table)


def main():
    cli()


if __name__ == "__main__":
    main()
