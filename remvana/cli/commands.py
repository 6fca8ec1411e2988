"""Remvana CLI commands for running and checking the service."""

from __future__ import annotations

import asyncio
import base64
import os
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Remvana travel booking backend CLI", no_args_is_help=True)
console = Console()


def _async_run(coro):
    """Run an async coroutine."""
    return asyncio.run(coro)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from API_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Start the API server."""
    import uvicorn

    from remvana.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "remvana.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.remvana_log_level.lower(),
    )


@app.command("init-db")
def init_db_command() -> None:
    """Create all database tables."""
    from remvana.config import get_settings
    from remvana.database import close_db, init_db

    async def _init() -> None:
        await init_db()
        await close_db()

    _async_run(_init())
    console.print(f"[green]✓[/green] Database ready: {get_settings().database_url}")


@app.command("gen-key")
def gen_key() -> None:
    """Print a new REMVANA_ENCRYPTION_KEY value."""
    console.print(base64.urlsafe_b64encode(os.urandom(32)).decode("ascii"))


@app.command()
def doctor() -> None:
    """Run health checks on the Remvana configuration."""
    console.print("\n[bold cyan]Remvana Doctor[/bold cyan]\n")
    issues = 0
    warnings = 0

    def ok(msg: str) -> None:
        console.print(f"  [green]✓[/green] {msg}")

    def warn(msg: str) -> None:
        nonlocal warnings
        warnings += 1
        console.print(f"  [yellow]⚠[/yellow] {msg}")

    def fail(msg: str) -> None:
        nonlocal issues
        issues += 1
        console.print(f"  [red]✗[/red] {msg}")

    # ── Environment ──
    console.print("[bold]Environment[/bold]")
    try:
        from remvana.config import get_settings
        settings = get_settings()
        ok(f"Config loaded (env={settings.remvana_env})")
    except Exception as exc:
        fail(f"Config failed: {exc}")
        settings = None

    if Path(".env").exists():
        ok(".env file found")
    else:
        warn(".env file missing, using defaults")

    # ── Database ──
    console.print("\n[bold]Database[/bold]")
    if settings:
        db_path = settings.database_url.replace("sqlite+aiosqlite:///", "")
        if "://" in db_path:
            ok(f"Database URL: {settings.database_url}")
        elif Path(db_path).exists():
            size_mb = Path(db_path).stat().st_size / 1024 / 1024
            ok(f"SQLite DB exists ({size_mb:.1f} MB): {db_path}")
        else:
            warn(f"SQLite DB not found: {db_path} (run 'remvana init-db')")

    # ── Providers ──
    console.print("\n[bold]Providers[/bold]")
    if settings:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Provider")
        table.add_column("Setting")
        table.add_column("Status")
        for provider, setting, needed_for in [
            ("duffel", "DUFFEL_API_KEY", "flight and hotel search"),
            ("stripe", "STRIPE_SECRET_KEY", "corporate cards"),
            ("openai", "OPENAI_API_KEY", "proposal notes"),
        ]:
            configured = settings.has_provider(provider)
            table.add_row(
                provider,
                setting,
                "[green]configured[/green]" if configured else f"[yellow]missing ({needed_for})[/yellow]",
            )
            if not configured:
                warnings += 1
        console.print(table)

    # ── Security ──
    console.print("\n[bold]Security[/bold]")
    if settings:
        if settings.remvana_encryption_key:
            try:
                from remvana.security.encryption import decrypt, encrypt
                if decrypt(encrypt("check")) == "check":
                    ok("Encryption key valid")
            except ValueError as exc:
                fail(str(exc))
        else:
            fail("REMVANA_ENCRYPTION_KEY not set; card references will be unreadable after restart")

    # ── Summary ──
    console.print()
    if issues == 0 and warnings == 0:
        console.print("[bold green]All checks passed![/bold green]")
    elif issues == 0:
        console.print(f"[bold yellow]{warnings} warning(s), no critical issues.[/bold yellow]")
    else:
        console.print(f"[bold red]{issues} issue(s), {warnings} warning(s). Fix the red items above.[/bold red]")
    console.print()
    if issues:
        raise typer.Exit(code=1)
