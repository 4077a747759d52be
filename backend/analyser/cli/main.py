"""
Auto Stock Analyser Backend - CLI Application
"""
import asyncio

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from analyser.config import settings
from analyser.logger import logger, logger_manager, VALID_LEVELS

# Create Typer app
app = typer.Typer(
    name="analyser",
    help="Auto Stock Analyser CLI",
    add_completion=False,
)

# Rich console for beautiful output
console = Console()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version and exit"),
    log_level: str = typer.Option(None, "--log-level", "-l", help="Override the log level"),
):
    """
    Auto Stock Analyser Backend CLI

    Refreshes technical analysis for listed US stocks from Yahoo Finance.
    """
    if version:
        console.print(f"[cyan]{settings.APP_NAME}[/cyan] v{settings.APP_VERSION}")
        raise typer.Exit()

    if log_level:
        if log_level.upper() not in VALID_LEVELS:
            console.print(f"[red]✗[/red] Invalid log level. Choose from: {', '.join(VALID_LEVELS)}")
            raise typer.Exit(code=2)
        logger_manager.set_level(log_level)

    if ctx.invoked_subcommand is None:
        # Show welcome message when no command is provided
        console.print(Panel.fit(
            f"[bold cyan]{settings.APP_NAME}[/bold cyan]\n"
            f"[dim]Version {settings.APP_VERSION}[/dim]\n\n"
            f"[yellow]Use --help to see available commands[/yellow]",
            box=box.ROUNDED,
            border_style="cyan"
        ))


@app.command()
def server(
    host: str = typer.Option(settings.API.host, "--host", "-h", help="Server host"),
    port: int = typer.Option(settings.API.port, "--port", "-p", help="Server port"),
    reload: bool = typer.Option(settings.DEBUG, "--reload", "-r", help="Enable auto-reload")
):
    """
    Start the FastAPI server (and the background refresh loop)
    """
    import uvicorn

    console.print(f"[green]Starting server at http://{host}:{port}[/green]")
    console.print(f"[dim]API docs: http://{host}:{port}/docs[/dim]\n")

    logger.info(f"Starting server via CLI at {host}:{port}")

    uvicorn.run(
        "analyser.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=settings.LOGGER.default_level.lower()
    )


@app.command()
def init_db():
    """
    Initialize the database (create tables)
    """
    from analyser.models import init_db as initialize_database

    console.print("[yellow]Initializing database...[/yellow]")
    logger.info("Initializing database via CLI")

    try:
        asyncio.run(initialize_database())
        console.print("[green]✓[/green] Database initialized successfully")
        logger.success("Database initialized via CLI")
    except Exception as e:
        console.print(f"[red]✗[/red] Error: {e}")
        logger.error(f"Database initialization failed: {e}")
        raise typer.Exit(code=1)


@app.command()
def refresh_once(
    concurrency: int = typer.Option(settings.FETCHER.concurrency, "--concurrency", "-c", help="Max requests in flight"),
    delay_ms: int = typer.Option(settings.FETCHER.delay_ms, "--delay-ms", "-d", help="Delay between launches"),
):
    """
    Run a single refresh cycle and print its summary
    """
    from analyser.managers.refresh_manager import GovernorConfig, RefreshManager
    from analyser.models import close_db, init_db as initialize_database

    async def _run():
        await initialize_database()
        manager = RefreshManager(
            governor_config=GovernorConfig.from_settings(concurrency=concurrency, delay_ms=delay_ms)
        )
        try:
            return await manager.run_once()
        finally:
            await manager.shutdown()
            await close_db()

    console.print(f"[yellow]Running one refresh cycle (c={concurrency}, d={delay_ms}ms)...[/yellow]")
    summary = asyncio.run(_run())

    table = Table(title="Refresh Cycle", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Listing source", summary.listing_source)
    table.add_row("Symbols", str(summary.total))
    table.add_row("Skipped (fresh)", str(summary.skipped))
    table.add_row("Fetched", str(summary.fetched))
    table.add_row("Persisted", str(summary.persisted))
    table.add_row("Errors", str(summary.errors))
    table.add_row("Rate limited", f"{summary.rate_limited} ({summary.report.rate_limit_rate():.1f}%)")
    table.add_row("Duration", f"{summary.report.total_time:.1f}s")
    console.print(table)


@app.command()
def probe_rate_limits():
    """
    Sweep concurrency and delay settings against Yahoo Finance
    """
    from analyser.cli.rate_limit_probe import ProbeResult, recommend, run_sweep
    from analyser.managers.refresh_manager.integrations import YahooFetchWorker, YahooSessionManager

    icons = {"safe": "✅", "aggressive": "⚠️", "unsafe": "❌"}

    def _phase(title: str) -> None:
        console.rule(f"[bold]{title}")

    def _result(result: ProbeResult) -> None:
        console.print(
            f"  {icons[result.verdict]} c={result.concurrency}, d={result.delay_ms}ms | "
            f"success: {result.success_rate:.0f}% ({result.successful}/{result.total_requests}), "
            f"rate_limited: {result.rate_limit_rate:.0f}%, avg: {result.avg_time_ms:.0f}ms"
        )

    async def _run():
        session = YahooSessionManager()
        try:
            return await run_sweep(YahooFetchWorker(session), on_phase=_phase, on_result=_result)
        finally:
            await session.aclose()

    console.print(Panel.fit("[bold cyan]Yahoo Finance rate limit probe[/bold cyan]", box=box.ROUNDED))
    results = asyncio.run(_run())

    best = recommend(results)
    if not best:
        console.print("[red]No usable configuration found. Try longer delays (3000ms+).[/red]")
        raise typer.Exit(code=1)

    table = Table(title="Recommended settings", box=box.ROUNDED)
    table.add_column("Concurrency", style="cyan")
    table.add_column("Delay (ms)", style="cyan")
    table.add_column("Success", style="green")
    table.add_column("Rate limited", style="yellow")
    for result in best:
        table.add_row(
            str(result.concurrency),
            str(result.delay_ms),
            f"{result.success_rate:.0f}%",
            f"{result.rate_limit_rate:.0f}%",
        )
    console.print(table)
    console.print(
        f"[dim]Set FETCHER__CONCURRENCY={best[0].concurrency} "
        f"FETCHER__DELAY_MS={best[0].delay_ms} to apply the top pick[/dim]"
    )


@app.command()
def status():
    """
    Show application configuration
    """
    table = Table(title="System Status", box=box.ROUNDED)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    db_url = settings.DATABASE.url
    table.add_row("Application", settings.APP_NAME)
    table.add_row("Version", settings.APP_VERSION)
    table.add_row("Debug Mode", str(settings.DEBUG))
    table.add_row("Log Level", logger_manager.get_level())
    table.add_row("Database", db_url.split("///")[-1] if ":///" in db_url else db_url)
    table.add_row("API Host", f"{settings.API.host}:{settings.API.port}")
    table.add_row("Concurrency", str(settings.FETCHER.concurrency))
    table.add_row("Launch delay", f"{settings.FETCHER.delay_ms}ms")
    table.add_row("Refresh interval", f"{settings.ANALYSIS.refresh_interval_seconds}s")
    table.add_row("Cycle interval", f"{settings.ANALYSIS.interval_seconds}s")
    table.add_row("Cache TTL", f"{settings.CACHE.ttl_seconds}s")

    console.print(table)
    logger.debug("Status command executed")


if __name__ == "__main__":
    app()
