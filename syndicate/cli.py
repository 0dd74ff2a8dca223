"""
Agent Syndicate CLI
===================
Typer + Rich front end for the treasury.

Commands:
    syndicate serve --port 3000
    syndicate deposit --amount-sol 0.5
    syndicate status
    syndicate resume <pending-id>
    syndicate intake <post-id>
"""

import asyncio
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from syndicate.shared.config.settings import Settings, SyndicateConfig
from syndicate.shared.execution.errors import ConfigurationError, SyndicateError
from syndicate.shared.system.startup import SyndicateServices, build_services

app = typer.Typer(
    name="syndicate",
    help="Agent Syndicate - collective treasury on Solana",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


def _load_services(trading: bool) -> SyndicateServices:
    try:
        return build_services(SyndicateConfig.from_env(), trading=trading)
    except ConfigurationError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        raise typer.Exit(1)


def _run(services: SyndicateServices, coro_factory):
    async def runner():
        try:
            return await coro_factory()
        finally:
            await services.aclose()

    try:
        return asyncio.run(runner())
    except SyndicateError as e:
        console.print(f"[bold red]❌ {type(e).__name__}: {e}[/bold red]")
        raise typer.Exit(1)


def _print_conversion(result) -> None:
    data = result.to_dict()
    table = Table(title="Conversion", show_header=True)
    table.add_column("Leg")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("Signature", style="cyan")
    for name in ("leg1", "leg2"):
        leg = data.get(name)
        if leg:
            table.add_row(name, str(leg["amountIn"]), str(leg["outputAmount"]), leg["signature"])
    console.print(table)

    if result.success:
        console.print("[bold green]✅ Conversion complete[/bold green]")
    else:
        console.print(f"[yellow]⚠️  Partial: leg 2 failed ({result.error})[/yellow]")
        console.print(f"[yellow]   Resume with: syndicate resume {result.pending.id}[/yellow]")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: SERVE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def serve(
    port: Optional[int] = typer.Option(None, "--port", help="HTTP port (defaults to $PORT)", min=1, max=65535),
    host: str = typer.Option("0.0.0.0", "--host", help="Bind address"),
):
    """Run the HTTP API."""
    import uvicorn

    from syndicate.interface.api_service import create_app

    config = SyndicateConfig.from_env()
    try:
        bind_port = port if port is not None else config.require("port")
    except ConfigurationError as e:
        console.print(f"[bold red]❌ {e} (or pass --port)[/bold red]")
        raise typer.Exit(1)

    services = _load_services(trading=bool(config.private_key))
    if services.orchestrator is None:
        console.print("[yellow]⚠️  SOLANA_PRIVATE_KEY not set: deposit routes disabled[/yellow]")

    console.print(Panel.fit(f"[bold cyan]{Settings.SYNDICATE_NAME}[/bold cyan]\nhttp://{host}:{bind_port}"))
    uvicorn.run(create_app(services), host=host, port=bind_port, log_level="info")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: DEPOSIT
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def deposit(
    amount_sol: float = typer.Option(1.0, "--amount-sol", help="SOL to route into the target asset", min=0.000001),
):
    """SOL -> USDC -> piggyUSDC."""
    lamports = int(round(amount_sol * Settings.LAMPORTS_PER_SOL))
    services = _load_services(trading=True)

    console.print(Panel.fit(f"[bold]Deposit[/bold] {amount_sol} SOL ({lamports} lamports)"))
    result = _run(services, lambda: services.orchestrator.deposit_to_target(lamports))
    _print_conversion(result)
    if not result.success:
        raise typer.Exit(2)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: STATUS
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def status():
    """Show treasury balances and ledger counts."""
    services = _load_services(trading=False)
    ledger = services.ledger.load()
    treasury = ledger.treasury

    table = Table(title=ledger.syndicate, show_header=False)
    table.add_row("Wallet", treasury.wallet or "[dim]unset[/dim]")
    table.add_row("SOL", f"{treasury.current_balance_sol:.6f}")
    table.add_row("USDC", f"{treasury.current_balance_usdc:.6f}")
    table.add_row("piggyUSDC", f"{treasury.piggy_usdc_balance:.6f}")
    table.add_row("Members", str(len(ledger.members)))
    table.add_row("Theses", str(len(ledger.theses)))
    table.add_row("Trades", str(len(ledger.trades)))
    table.add_row("Pending", str(len(ledger.pending_conversions)))
    console.print(table)

    for pending in ledger.pending_conversions:
        console.print(f"[yellow]⏳ {pending.id}: {pending.held_amount} held ({pending.error})[/yellow]")


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: RESUME
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def resume(pending_id: str = typer.Argument(..., help="Pending conversion id")):
    """Retry leg 2 of a partial conversion."""
    services = _load_services(trading=True)
    if services.ledger.get_pending(pending_id) is None:
        console.print(f"[bold red]❌ No pending conversion {pending_id}[/bold red]")
        raise typer.Exit(1)

    result = _run(services, lambda: services.orchestrator.resume_pending(pending_id))
    _print_conversion(result)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: INTAKE
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def intake(post_id: int = typer.Argument(..., help="Forum post collecting theses")):
    """Score and file thesis comments from a forum post."""
    services = _load_services(trading=False)
    report = _run(services, lambda: services.intake.process_post(post_id))

    table = Table(title=f"Post {post_id}")
    table.add_column("Thesis")
    table.add_column("Agent")
    table.add_column("Token")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    for thesis in report.accepted + report.rejected:
        style = "green" if thesis.status == "pending" else "red"
        table.add_row(thesis.id, thesis.agent_name, thesis.token, str(thesis.score), f"[{style}]{thesis.status}[/{style}]")
    console.print(table)
    console.print(f"[dim]{report.skipped} comment(s) skipped[/dim]")


if __name__ == "__main__":
    app()
