"""
FeedCrank CLI
=============
Command-line interface using Typer + Rich.

Commands:
    crank run                       # Feeds from CRANK_FEEDS / CRANK_FEEDS_FILE / defaults
    crank run <FEED> <FEED> ...     # Explicit feed list
    crank run --simulate-only       # Stop after the simulation gate
    crank one <FEED>                # Single-feed crank
    crank config                    # Show resolved configuration
"""

import asyncio
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

from config.settings import Settings
from feedcrank.execution.collector import parse_feeds
from feedcrank.execution.instruction_factory import MAX_UNITS
from feedcrank.execution.pipeline import CrankConfig, CrankPipeline
from feedcrank.shared.execution.crank_result import (
    ConfigurationError,
    CrankError,
    CrankResult,
    PipelineStage,
)
from feedcrank.shared.infrastructure.crossbar_client import CrossbarRelayClient
from feedcrank.shared.infrastructure.keypair_loader import load_keypair

app = typer.Typer(
    name="crank",
    help="FeedCrank - refresh many Switchboard feeds in one Solana transaction",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()


async def _crank(feed_ids: List[str], config: CrankConfig, keypair_path: str, simulate_only: bool) -> CrankResult:
    """Parse inputs, open clients, run one pipeline."""
    feeds = parse_feeds(feed_ids)
    keypair = load_keypair(keypair_path, Settings.SOLANA_PRIVATE_KEY or None)
    try:
        timeout = float(Settings.RELAY_TIMEOUT_S)
    except ValueError as e:
        raise ConfigurationError(f"CRANK_RELAY_TIMEOUT must be a number: {e}") from e

    async with AsyncClient(Settings.RPC_URL, commitment=Confirmed) as rpc:
        async with CrossbarRelayClient(
            rpc,
            crossbar_url=Settings.SWB_CROSSBAR,
            gateway_url=Settings.SWB_GATEWAY,
            network=Settings.SWB_NETWORK,
            timeout=timeout,
            debug=Settings.RELAY_DEBUG,
        ) as relay:
            pipeline = CrankPipeline(rpc, relay, keypair, config)
            try:
                return await pipeline.run(feeds, simulate_only=simulate_only)
            except (KeyboardInterrupt, asyncio.CancelledError):
                if pipeline.stage == PipelineStage.SUBMITTING:
                    console.print(
                        "[bold yellow]⚠️  Interrupted while submitting: outcome unknown. "
                        "Look the transaction up by signature before re-running.[/bold yellow]"
                    )
                raise


def _execute(feed_ids: List[str], config: CrankConfig, keypair_path: str, simulate_only: bool) -> None:
    try:
        result = asyncio.run(_crank(feed_ids, config, keypair_path, simulate_only))
    except CrankError as e:
        stage = f" [{e.stage.value}]" if e.stage else ""
        console.print(f"[bold red]❌ {e.code.value}{stage}: {e}[/bold red]")
        raise typer.Exit(1)

    if result.submitted:
        body = f"[bold green]✅ Cranked {len(result.feeds)} feeds in one tx[/bold green]\n{result.signature}\n"
    else:
        body = f"[bold cyan]🧪 Simulated {len(result.feeds)} feeds (nothing sent)[/bold cyan]\n"
    body += "\n".join(f"  • {feed}" for feed in result.feeds)
    body += f"\n[dim]cu_limit={result.unit_limit} | {result.tx_size} bytes | {result.latency_ms:.0f} ms[/dim]"
    console.print(Panel.fit(body, border_style="green" if result.submitted else "cyan"))


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: RUN (Batch Crank)
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def run(
    feeds: Optional[List[str]] = typer.Argument(
        None,
        help="Feed pubkeys (defaults to CRANK_FEEDS / CRANK_FEEDS_FILE / built-in list)",
    ),
    num_signatures: Optional[int] = typer.Option(
        None,
        "--num-signatures",
        help="Oracle signatures required per feed update",
        min=1,
    ),
    simulate_only: bool = typer.Option(
        False,
        "--simulate-only",
        help="Stop after the simulation gate",
    ),
    concurrent: Optional[bool] = typer.Option(
        None,
        "--concurrent/--sequential",
        help="Fan out relay requests",
    ),
    keypair: Optional[str] = typer.Option(
        None,
        "--keypair",
        help="Payer keypair file (defaults to KEYPAIR)",
    ),
):
    """
    Refresh every feed in [bold]one[/bold] transaction.

    \b
    Examples:
        crank run
        crank run 4Hmd6PdjVA9auCoScE12iaBogfwS4ZXQ6VZoBeqanwWW --simulate-only
        crank run --num-signatures 3 --concurrent
    """
    try:
        feed_ids = list(feeds) if feeds else Settings.load_feeds()
        config = CrankConfig.from_settings(
            num_signatures=num_signatures,
            concurrent_fetch=concurrent,
        )
    except (CrankError, OSError, ValueError) as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        raise typer.Exit(1)

    _execute(feed_ids, config, keypair or Settings.KEYPAIR_PATH, simulate_only)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: ONE (Single Feed)
# ═══════════════════════════════════════════════════════════════════════════════

@app.command()
def one(
    feed: str = typer.Argument(..., help="Feed pubkey"),
    num_signatures: int = typer.Option(
        Settings.SINGLE_FEED_NUM_SIGNATURES,
        "--num-signatures",
        help="Oracle signatures required for the update",
        min=1,
    ),
    unit_limit: int = typer.Option(
        Settings.SINGLE_FEED_CU,
        "--unit-limit",
        help="Fixed compute unit limit",
        min=1,
        max=MAX_UNITS,
    ),
    simulate_only: bool = typer.Option(False, "--simulate-only", help="Stop after the simulation gate"),
    keypair: Optional[str] = typer.Option(None, "--keypair", help="Payer keypair file"),
):
    """
    Crank a single feed with a fixed compute limit.
    """
    try:
        config = CrankConfig.from_settings(
            num_signatures=num_signatures,
            fixed_unit_limit=unit_limit,
        )
    except CrankError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        raise typer.Exit(1)

    _execute([feed], config, keypair or Settings.KEYPAIR_PATH, simulate_only)


# ═══════════════════════════════════════════════════════════════════════════════
# COMMAND: CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@app.command("config")
def show_config():
    """Show the resolved configuration."""
    table = Table(title="FeedCrank Configuration", show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")

    table.add_row("RPC_URL", Settings.RPC_URL)
    table.add_row("SWB_CROSSBAR", Settings.SWB_CROSSBAR)
    table.add_row("SWB_GATEWAY", Settings.SWB_GATEWAY)
    table.add_row("SWB_NETWORK", Settings.SWB_NETWORK)
    table.add_row("SWB_DEBUG", str(Settings.RELAY_DEBUG))
    table.add_row("KEYPAIR", Settings.KEYPAIR_PATH)
    table.add_row("SWB_NUM_SIGNATURES", str(Settings.NUM_SIGNATURES))
    table.add_row("CRANK_PER_FEED_CU", str(Settings.PER_FEED_CU))
    table.add_row("CRANK_MIN_CU", str(Settings.MIN_CU))
    table.add_row("CRANK_MAX_CU", str(Settings.MAX_CU))
    table.add_row("CRANK_CU_PRICE", str(Settings.CU_PRICE_MICRO_LAMPORTS))
    table.add_row("CRANK_CONCURRENT_FETCH", str(Settings.CONCURRENT_FETCH))

    try:
        feeds = Settings.load_feeds()
    except (CrankError, OSError, ValueError) as e:
        feeds = [f"<unreadable: {e}>"]
    table.add_row("FEEDS", "\n".join(feeds))

    console.print(table)


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def main():
    """Entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user.[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
