"""
Management commands for the Creator Ledger.
"""

import asyncio
import sys

import typer
from rich.console import Console
from rich.table import Table

from creator_ledger.core.config import settings
from creator_ledger.core.database import init_database, close_database, get_async_session, DatabaseManager
from creator_ledger.core.logging import setup_logging, get_logger

console = Console()
logger = get_logger(__name__)
app = typer.Typer(help="Creator Ledger management commands")


@app.command("init-db")
def init_db():
    """Create all ledger tables."""
    async def _init():
        setup_logging()
        await init_database()
        await DatabaseManager.create_tables()
        await close_database()
        console.print("[green]Database initialized[/green]")

    asyncio.run(_init())


@app.command("reset-db")
def reset_db(yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt")):
    """Drop all ledger tables."""
    if not yes and not typer.confirm("Drop all ledger tables?"):
        console.print("Operation cancelled")
        raise typer.Exit()

    async def _reset():
        setup_logging()
        await init_database()
        await DatabaseManager.drop_tables()
        await close_database()
        console.print("[yellow]All tables dropped[/yellow]")

    asyncio.run(_reset())


@app.command()
def health():
    """Check database health."""
    async def _health() -> bool:
        setup_logging()
        await init_database()
        try:
            return await DatabaseManager.health_check()
        finally:
            await close_database()

    if asyncio.run(_health()):
        console.print("[green]Database is healthy[/green]")
    else:
        console.print("[red]Database health check failed[/red]")
        sys.exit(1)


@app.command()
def balance(creator_id: str = typer.Argument(..., help="Creator to report on")):
    """Show a creator's balance and tier."""
    from creator_ledger.services.earnings_service import EarningsService

    async def _balance():
        setup_logging()
        await init_database()
        try:
            async with get_async_session() as session:
                return await EarningsService(session).get_summary(creator_id)
        finally:
            await close_database()

    summary = asyncio.run(_balance())

    table = Table(title=f"Creator {creator_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Tier", summary["tier_level"])
    table.add_row("Rate per view", str(summary["rate_per_view"]))
    table.add_row("Unpaid balance (USD)", str(summary["current_balance_usd"]))
    table.add_row("Paid out (USD)", str(summary["paid_out_usd"]))
    table.add_row("Lifetime earnings (USD)", str(summary["lifetime_earnings_usd"]))
    table.add_row("Lifetime views", str(summary["lifetime_views"]))
    table.add_row("Views this month", str(summary["month_views"]))
    console.print(table)


@app.command()
def payouts(
    status: str = typer.Option("pending", help="Payout status to list"),
    limit: int = typer.Option(50, help="Maximum rows"),
):
    """Print payout requests as JSON rows."""
    from creator_ledger.models.payout import PayoutStatus
    from creator_ledger.services.payout_service import PayoutService

    try:
        wanted = PayoutStatus(status)
    except ValueError:
        console.print(f"[red]Unknown status:[/red] {status}")
        raise typer.Exit(code=2)

    async def _payouts():
        setup_logging()
        await init_database()
        try:
            async with get_async_session() as session:
                requests = await PayoutService(session).list_requests(status=wanted, limit=limit)
                return [r.to_dict() for r in requests]
        finally:
            await close_database()

    rows = asyncio.run(_payouts())
    logger.info("Listed payout requests", status=wanted.value, count=len(rows))
    for row in rows:
        console.print_json(data=row)


@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address"),
    port: int = typer.Option(None, help="Bind port"),
):
    """Run the API server."""
    import uvicorn

    uvicorn.run(
        "creator_ledger.api.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    app()
