"""
heyclaw CLI

Commands:
    onboard  write a default config
    status   accounts, token sources, probe and policy warnings
    gateway  run the bridge for every enabled account
    send     send one message to a room/channel
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Final

import typer
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from heyclaw import __logo__, __version__


# ============================================================================
# CLI App
# ============================================================================

APP_NAME: Final[str] = "heyclaw"

app = typer.Typer(
    name=APP_NAME,
    help=f"{__logo__} heyclaw - Heychat bridge for agent runtimes",
    no_args_is_help=True,
)

console = Console()


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


# ============================================================================
# Version
# ============================================================================

def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} heyclaw v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-V", callback=version_callback, is_eager=True
    ),
):
    """heyclaw - Heychat bridge for agent runtimes."""
    pass


# ============================================================================
# Onboard
# ============================================================================


@app.command()
def onboard():
    """Initialize heyclaw configuration."""
    from heyclaw.config.loader import get_config_path, save_config
    from heyclaw.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), config_path)

    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("\nNext steps:")
    console.print("  1. Set [cyan]channels.heychat.token[/cyan] or export [cyan]HEYCHAT_APP_TOKEN[/cyan]")
    console.print("  2. Run: [cyan]heyclaw gateway --echo[/cyan]")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """Show configured Heychat accounts."""
    from heyclaw.channels.heychat.api import probe_token
    from heyclaw.channels.heychat.policy import collect_security_warnings
    from heyclaw.config.accounts import describe_account, list_account_ids, resolve_account
    from heyclaw.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} heyclaw Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")

    table = Table(title="Heychat accounts")
    table.add_column("Account")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Token")
    table.add_column("Probe")
    table.add_column("Group policy")

    warnings: list[str] = []
    for account_id in list_account_ids(config):
        account = resolve_account(config, account_id)
        info = describe_account(account)
        probe = probe_token(account.token)
        table.add_row(
            info["account_id"],
            info["name"],
            "[green]✓[/green]" if info["enabled"] else "[dim]no[/dim]",
            info["token_source"] if info["configured"] else "[dim]not set[/dim]",
            "[green]ok[/green]" if probe.ok else f"[red]{probe.error}[/red]",
            account.config.group_policy,
        )
        warnings.extend(collect_security_warnings(account))

    console.print(table)

    for warning in warnings:
        console.print(f"[yellow]{escape(warning)}[/yellow]")


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def gateway(
    echo: bool = typer.Option(False, "--echo", help="Attach the echo agent"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Start the Heychat bridge for every enabled account."""
    from heyclaw.agents.echo import EchoAgent
    from heyclaw.bus.queue import MessageBus
    from heyclaw.channels.manager import ChannelManager
    from heyclaw.config.loader import load_config

    _configure_logging(verbose)

    config = load_config()
    bus = MessageBus()
    channels = ChannelManager(config, bus)

    if not channels.channels:
        console.print("[red]Error: no enabled Heychat account with a token.[/red]")
        raise typer.Exit(1)

    console.print(f"{__logo__} Starting heyclaw gateway: {', '.join(channels.enabled_channels)}")

    async def run():
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                pass

        agent = EchoAgent(bus) if echo else None
        agent_task = asyncio.create_task(agent.run()) if agent else None

        await channels.start()
        await stop.wait()

        console.print("\nShutting down...")
        await channels.stop()
        if agent:
            agent.stop()
        if agent_task:
            await agent_task

    asyncio.run(run())


# ============================================================================
# Send
# ============================================================================


@app.command()
def send(
    target: str = typer.Argument(..., help="<room_id>:<channel_id>"),
    text: str = typer.Argument(...),
    account_id: str = typer.Option(None, "--account", "-a"),
):
    """Send one message through the Heychat REST API."""
    from heyclaw.channels.heychat.api import HeychatClient
    from heyclaw.channels.heychat.errors import HeychatError
    from heyclaw.channels.heychat.protocol import MsgType
    from heyclaw.channels.heychat.topology import TopologyCache
    from heyclaw.config.accounts import resolve_account, resolve_default_account_id
    from heyclaw.config.loader import load_config

    config = load_config()
    account = resolve_account(config, account_id or resolve_default_account_id(config))

    if not account.token:
        console.print(f"[red]Error: Heychat token not configured for {account.account_id}.[/red]")
        raise typer.Exit(1)

    try:
        room_id, channel_id = TopologyCache().resolve_target(target)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    async def run_once():
        client = HeychatClient(account.token, config.heychat.http_host, verify_ssl=config.heychat.verify_ssl)
        try:
            return await client.send_text(room_id, channel_id, text, msg_type=MsgType.AT_MARKDOWN)
        finally:
            await client.aclose()

    try:
        result = asyncio.run(run_once())
    except HeychatError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Sent (msg_id={result.msg_id or '-'})")


if __name__ == "__main__":
    app()
