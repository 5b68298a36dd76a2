"""CLI for safe-quorum - drive a Safe multisig wallet from the terminal."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from dotenv import dotenv_values
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from safe_quorum.config import WorkflowConfig
    from safe_quorum.owners import OwnerIdentity
    from safe_quorum.provider import Web3Provider
    from safe_quorum.safe.factory import SafeFactory
    from safe_quorum.safe.relay import SafeTransactionService

app = typer.Typer(
    name="safe-quorum",
    help="Propose, confirm and execute Safe multisig transactions.",
    no_args_is_help=True,
)
console = Console()

_config_path: Path | None = None
_env_file: Path = Path(".env")


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"safe-quorum {version('safe-quorum')}")
        raise typer.Exit()


@app.callback()
def main(
    config: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML config file (default: environment variables and .env)",
        envvar="SAFE_QUORUM_CONFIG",
    ),
    env_file: Path = typer.Option(
        Path(".env"), "--env-file", help="dotenv file merged under the process environment"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Propose, confirm and execute Safe multisig transactions."""
    global _config_path, _env_file
    _config_path = config
    _env_file = env_file
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


# ------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------


@dataclass
class _Context:
    config: WorkflowConfig
    provider: Web3Provider
    owners: list[OwnerIdentity]
    factory: SafeFactory
    relay_url: str

    def relay(self) -> SafeTransactionService:
        from safe_quorum.safe.relay import SafeTransactionService
        return SafeTransactionService(self.relay_url)


def _environ() -> dict[str, str]:
    merged = {k: v for k, v in dotenv_values(_env_file).items() if v is not None}
    merged.update(os.environ)
    return merged


def _load_context() -> _Context:
    from safe_quorum.config import config_from_env, load_config
    from safe_quorum.owners import load_owners
    from safe_quorum.provider import Web3Provider
    from safe_quorum.safe.factory import SafeFactory

    environ = _environ()
    try:
        if _config_path is not None:
            config = load_config(_config_path, environ=environ)
        else:
            config = config_from_env(environ)
        provider = Web3Provider(config.chain, rpc_url=config.rpc_url)
        owners = load_owners(config.owner_private_keys)
    except (ValueError, KeyError, FileNotFoundError) as e:
        console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    factory = SafeFactory(provider, owners[0])
    relay_url = config.tx_service_url or provider.chain.tx_service_url
    return _Context(config=config, provider=provider, owners=owners, factory=factory, relay_url=relay_url)


def _require_safe(ctx: _Context):
    if not ctx.config.safe_address:
        console.print("[yellow]No Safe configured.[/yellow] Set SMART_ACCOUNT_ADDRESS or run 'safe-quorum deploy'.")
        raise typer.Exit(1)
    try:
        return ctx.factory.connect(ctx.config.safe_address, ctx.owners[0])
    except Exception as e:
        console.print(f"[red]Could not connect to Safe: {escape(str(e))}[/red]")
        raise typer.Exit(1)


def _owner(ctx: _Context, number: int):
    if not 1 <= number <= len(ctx.owners):
        console.print(f"[red]Owner {number} is not configured ({len(ctx.owners)} owners).[/red]")
        raise typer.Exit(1)
    return ctx.owners[number - 1]


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


@app.command("run")
def run_cmd():
    """Run the full workflow: connect or deploy, propose, confirm, execute."""
    from safe_quorum.polling import TimedOut
    from safe_quorum.workflow import run_workflow

    ctx = _load_context()
    chain = ctx.provider.chain

    async def _go():
        async with ctx.relay() as relay:
            return await run_workflow(
                ctx.config,
                provider=ctx.provider,
                relay=relay,
                factory=ctx.factory,
                owners=ctx.owners,
            )

    try:
        report = _run(_go())
    except Exception as e:
        console.print(f"[red]Workflow failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if report.deployed:
        console.print(Panel(
            f"[bold green]Your Safe has been deployed![/bold green]\n\n"
            f"Explorer: {chain.address_link(report.safe_address)}\n"
            f"Safe app: {chain.safe_app_link(report.safe_address)}",
            title="Safe Deployed",
        ))

    table = Table(title=f"Safe {report.safe_address}")
    table.add_column("#", style="dim")
    table.add_column("Owner", style="cyan")
    for i, owner in enumerate(report.owners, start=1):
        table.add_row(str(i), owner)
    console.print(table)

    if report.proposal is not None:
        console.print(f"Proposed: [cyan]{report.proposal.safe_tx_hash}[/cyan]")

    if isinstance(report.confirmation, TimedOut):
        console.print("[yellow]No pending transactions; nothing was executed.[/yellow]")
        return

    execution = report.execution
    console.print(Panel(
        f"[bold green]Transaction executed![/bold green]\n\n"
        f"Tx: [cyan]{execution.tx_hash}[/cyan]\n"
        f"Explorer: {chain.tx_link(execution.tx_hash)}\n\n"
        f"Final Safe balance: [bold]{execution.balance_ether} {chain.native_symbol}[/bold]",
        title="Executed",
    ))


@app.command("owners")
def owners_cmd():
    """Show the owner addresses derived from the configured keys."""
    ctx = _load_context()
    table = Table(title="Configured Owners")
    table.add_column("#", style="dim")
    table.add_column("Address", style="cyan")
    for i, owner in enumerate(ctx.owners, start=1):
        table.add_row(str(i), owner.address)
    console.print(table)

    if ctx.config.safe_address:
        account = _require_safe(ctx)
        console.print(
            f"Safe [cyan]{account.address}[/cyan] (v{account.get_version()}) threshold: "
            f"[bold]{account.get_threshold()}[/bold] of {len(account.get_owners())}"
        )


@app.command("deploy")
def deploy_cmd(
    threshold: int = typer.Option(None, "--threshold", "-t", help="Confirmations required (default: owners - 1)"),
):
    """Deploy a new Safe owned by every configured owner."""
    from safe_quorum.safe.factory import default_threshold

    ctx = _load_context()
    chain = ctx.provider.chain
    addresses = [o.address for o in ctx.owners]
    if threshold is None:
        threshold = default_threshold(len(addresses))

    console.print(f"\n[bold]Deploy a {threshold}-of-{len(addresses)} Safe on {chain.name}[/bold]")
    typer.confirm("This is an on-chain transaction paid by owner 1. Continue?", abort=True)

    try:
        account = ctx.factory.deploy_safe(addresses, threshold)
    except Exception as e:
        console.print(f"[red]Deployment failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold green]Your Safe has been deployed![/bold green]\n\n"
        f"Address: [cyan]{account.address}[/cyan]\n"
        f"Explorer: {chain.address_link(account.address)}\n"
        f"Safe app: {chain.safe_app_link(account.address)}\n\n"
        f"[dim]Set SMART_ACCOUNT_ADDRESS={account.address} to reuse it.[/dim]",
        title="Safe Deployed",
    ))


@app.command("balance")
def balance_cmd():
    """Show the Safe's native token balance."""
    ctx = _load_context()
    account = _require_safe(ctx)
    balance = account.get_balance()
    console.print(f"[bold]{account.address}:[/bold] {balance} {ctx.provider.chain.native_symbol}")


@app.command("fund")
def fund_cmd(
    amount: str = typer.Argument(help="Amount to send to the Safe (e.g. 0.01)"),
    owner: int = typer.Option(1, "--owner", "-o", help="Owner number paying for the deposit"),
):
    """Send native tokens from an owner's address to the Safe."""
    from safe_quorum.polling import TimedOut
    from safe_quorum.workflow import fund_account

    ctx = _load_context()
    account = _require_safe(ctx)
    funder = _owner(ctx, owner)
    chain = ctx.provider.chain

    console.print(f"\n[bold]Send {amount} {chain.native_symbol} to {account.address}[/bold]")
    typer.confirm("Confirm this transaction?", abort=True)

    try:
        result = _run(fund_account(ctx.provider, amount, account.address, funder, ctx.config.polling))
    except Exception as e:
        console.print(f"[red]Transaction failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if isinstance(result, TimedOut):
        console.print("[yellow]Deposit sent but not yet mined; check the explorer later.[/yellow]")
        return
    tx_hash = result.value["transactionHash"].to_0x_hex()
    console.print(f"[green]Deposit confirmed:[/green] {chain.tx_link(tx_hash)}")


@app.command("propose")
def propose_cmd(
    amount: str = typer.Argument(help="Amount to transfer out of the Safe (e.g. 0.005)"),
    to: str = typer.Option(None, "--to", "-t", help="Recipient address (default: first Safe owner)"),
    owner: int = typer.Option(1, "--owner", "-o", help="Proposing owner number"),
):
    """Propose a transfer from the Safe to the Safe Transaction Service."""
    from safe_quorum.workflow import propose_transaction

    ctx = _load_context()
    account = _require_safe(ctx)
    proposer = _owner(ctx, owner)
    destination = to or account.get_owners()[0]

    async def _go():
        async with ctx.relay() as relay:
            return await propose_transaction(account, relay, amount, destination, proposer)

    try:
        proposal = _run(_go())
    except Exception as e:
        console.print(f"[red]Proposal failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)
    console.print(
        f"Owner {owner} proposed sending {amount} {ctx.provider.chain.native_symbol} "
        f"to {destination}: [cyan]{proposal.safe_tx_hash}[/cyan]"
    )


@app.command("pending")
def pending_cmd():
    """List transactions waiting for confirmations or execution."""
    ctx = _load_context()
    account = _require_safe(ctx)

    async def _go():
        async with ctx.relay() as relay:
            return await relay.get_pending_transactions(account.address)

    try:
        pending = _run(_go())
    except Exception as e:
        console.print(f"[red]Could not list pending transactions: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if not pending:
        console.print("[dim]No pending transactions.[/dim]")
        return

    table = Table(title="Pending Transactions")
    table.add_column("Nonce", justify="right")
    table.add_column("Safe Tx Hash", style="cyan")
    table.add_column("To", style="dim")
    table.add_column("Value (wei)", justify="right")
    table.add_column("Confirmations")
    for tx in pending:
        required = tx.confirmations_required if tx.confirmations_required is not None else "?"
        table.add_row(
            str(tx.nonce),
            tx.safe_tx_hash,
            tx.to,
            str(tx.value),
            f"{len(tx.confirmations)}/{required}",
        )
    console.print(table)


@app.command("confirm")
def confirm_cmd(
    owner: int = typer.Option(2, "--owner", "-o", help="Confirming owner number"),
):
    """Wait for a pending transaction and confirm it as another owner."""
    from safe_quorum.polling import TimedOut
    from safe_quorum.workflow import confirm_transaction

    ctx = _load_context()
    account = _require_safe(ctx)
    confirmer = _owner(ctx, owner)

    async def _go():
        async with ctx.relay() as relay:
            return await confirm_transaction(relay, account, confirmer, ctx.config.polling)

    try:
        result = _run(_go())
    except Exception as e:
        console.print(f"[red]Confirmation failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    if isinstance(result, TimedOut):
        console.print("[yellow]No pending transactions.[/yellow]")
        return
    console.print(f"Owner {owner} confirmed [cyan]{result.value}[/cyan]")


@app.command("execute")
def execute_cmd(
    safe_tx_hash: str = typer.Argument(help="Safe transaction hash to execute"),
    owner: int = typer.Option(1, "--owner", "-o", help="Owner number paying for execution"),
):
    """Execute a fully confirmed transaction on chain."""
    from safe_quorum.workflow import execute_transaction

    ctx = _load_context()
    account = _require_safe(ctx).with_owner(_owner(ctx, owner))
    chain = ctx.provider.chain

    async def _go():
        async with ctx.relay() as relay:
            return await execute_transaction(
                relay, account, safe_tx_hash, polling=ctx.config.polling
            )

    try:
        result = _run(_go())
    except Exception as e:
        console.print(f"[red]Execution failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    console.print(Panel(
        f"[bold green]Transaction executed![/bold green]\n\n"
        f"Tx: [cyan]{result.tx_hash}[/cyan]\n"
        f"Explorer: {chain.tx_link(result.tx_hash)}\n\n"
        f"Final Safe balance: [bold]{result.balance_ether} {chain.native_symbol}[/bold]",
        title="Executed",
    ))


if __name__ == "__main__":
    app()
