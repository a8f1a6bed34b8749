"""
fund-shares CLI

Command-line access to an already-deployed fund protocol on a
development node.

Commands:
  info          - Show node and configuration information
  accounts      - List node accounts and their protocol roles
  mine          - Force the node to mine a block (evm_mine)
  tick          - Push a datafeed price update
  setup-fund    - Create a new fund as the manager
  calculations  - Show a fund's performCalculations result
  balances      - Show token balances of investor, manager, and fund
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

from .chain.rpc import RpcClient
from .errors import ConfigError, FundSharesError
from .protocol.config import find_config_dir, load_env_file, load_environment
from .protocol.datafeed import DEFAULT_SETTLE_DELAY
from .protocol.fund import Fund, ProtocolSession, node_client


VERSION = "0.1.0"


def _session(ctx: click.Context) -> ProtocolSession:
    """Connect once per invocation; exits with the error's code on failure."""
    if "session" not in ctx.obj:
        try:
            ctx.obj["session"] = ProtocolSession.connect(
                environment=ctx.obj["env"],
                config_dir=ctx.obj["config_dir"],
            )
        except FundSharesError as exc:
            _fail(exc)
        except (ValueError, FileNotFoundError) as exc:
            click.secho(f"ERROR: {exc}", fg="red")
            sys.exit(1)
        except httpx.HTTPError as exc:
            _unreachable("node", exc)
    return ctx.obj["session"]


def _node(ctx: click.Context) -> RpcClient:
    """RPC client for the selected environment, without loading contracts."""
    config_dir = ctx.obj["config_dir"]
    if config_dir is None:
        try:
            config_dir = find_config_dir()
        except ConfigError:
            # No deployment around: plain node URL resolution.
            return node_client()
    load_env_file(config_dir)
    return node_client(load_environment(ctx.obj["env"], config_dir))


def _fail(exc: FundSharesError) -> None:
    click.secho(f"ERROR: {exc}", fg="red")
    sys.exit(exc.exit_code)


def _unreachable(what: str, exc: httpx.HTTPError) -> None:
    click.secho(f"ERROR: Cannot reach {what}: {exc}", fg="red")
    sys.exit(1)


def _fund(session: ProtocolSession, fund_id: Optional[int]) -> tuple[int, Fund]:
    if fund_id is None:
        fund_id = int(session.version.call("getLastFundId"))
    return fund_id, session.fund(fund_id)


# ============ Main CLI Group ============


@click.group()
@click.version_option(version=VERSION, prog_name="fundshares")
@click.option("--env", "env", envvar="FUNDSHARES_ENV", default="development", help="Deployment environment")
@click.option("--rpc-url", envvar="FUNDSHARES_RPC_URL", default=None, help="Node JSON-RPC URL")
@click.option(
    "--config-dir",
    envvar="FUNDSHARES_CONFIG_DIR",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding address-book.json and friends",
)
@click.option("--verbose", "-v", is_flag=True, help="Log RPC traffic")
@click.pass_context
def cli(ctx: click.Context, env: str, rpc_url: Optional[str], config_dir: Optional[Path], verbose: bool) -> None:
    """Fund shares - poke a deployed fund protocol."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if rpc_url:
        os.environ["FUNDSHARES_RPC_URL"] = rpc_url
    ctx.ensure_object(dict)
    ctx.obj["env"] = env
    ctx.obj["config_dir"] = config_dir


# ============ Node ============


@cli.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """Show node and configuration information."""
    session = _session(ctx)
    click.echo(f"fundshares v{VERSION}")
    click.echo(f"  Environment:  {session.config.name}")
    click.echo(f"  Node:         {session.api.url}")
    click.echo(f"  Block:        {session.api.block_number()}")
    click.echo(f"  Version:      {session.addresses['Version']}")
    click.echo(f"  DataFeed:     {session.addresses['DataFeed']}")


@cli.command()
@click.pass_context
def accounts(ctx: click.Context) -> None:
    """List node accounts and their protocol roles."""
    session = _session(ctx)
    roles = {
        session.deployer: "deployer",
        session.manager: "manager",
        session.investor: "investor",
        session.worker: "worker",
    }
    for index, address in enumerate(session.accounts):
        role = roles.get(address, "")
        click.echo(f"  [{index}] {address}  {role}".rstrip())


@cli.command()
@click.option("--blocks", default=1, type=click.IntRange(min=1), help="Number of blocks to mine")
@click.pass_context
def mine(ctx: click.Context, blocks: int) -> None:
    """Force the node to mine blocks (evm_mine)."""
    try:
        api = _node(ctx)
        for _ in range(blocks):
            api.mine_block()
        click.echo(f"Mined {blocks} block(s); head is now #{api.block_number()}")
    except FundSharesError as exc:
        _fail(exc)
    except httpx.HTTPError as exc:
        _unreachable("node", exc)


# ============ Protocol ============


@cli.command()
@click.option("--settle-delay", default=DEFAULT_SETTLE_DELAY, type=float, show_default=True,
              help="Seconds to wait before sending the update")
@click.pass_context
def tick(ctx: click.Context, settle_delay: float) -> None:
    """Push a datafeed price update from live quotes."""
    session = _session(ctx)
    try:
        result = session.update_datafeed(settle_delay=settle_delay)
    except FundSharesError as exc:
        _fail(exc)
    except httpx.HTTPError as exc:
        _unreachable("price API or node", exc)
    click.secho("Datafeed updated", fg="green")
    click.echo(f"  TX: {result.tx_hash}")


@cli.command("setup-fund")
@click.option("--name", default="Melon Portfolio", show_default=True, help="Fund name")
@click.pass_context
def setup_fund(ctx: click.Context, name: str) -> None:
    """Create a new fund managed by the manager account."""
    session = _session(ctx)
    try:
        fund_id, fund = session.setup_fund(name)
    except FundSharesError as exc:
        _fail(exc)
    click.secho(f"Fund #{fund_id} created", fg="green")
    click.echo(f"  Address: {fund.address}")


@cli.command()
@click.option("--fund-id", default=None, type=int, help="Fund id (default: latest)")
@click.pass_context
def calculations(ctx: click.Context, fund_id: Optional[int]) -> None:
    """Show a fund's gav, rewards, nav, and share price."""
    session = _session(ctx)
    try:
        fund_id, fund = _fund(session, fund_id)
        calc = fund.calculations(sender=session.deployer)
    except FundSharesError as exc:
        _fail(exc)
    click.echo(f"  Fund #{fund_id} ({fund.address})")
    click.echo(f"  GAV:                {calc.gav}")
    click.echo(f"  Management reward:  {calc.management_reward}")
    click.echo(f"  Performance reward: {calc.performance_reward}")
    click.echo(f"  Unclaimed rewards:  {calc.unclaimed_rewards}")
    click.echo(f"  NAV:                {calc.nav}")
    click.echo(f"  Share price:        {calc.share_price}")


@cli.command()
@click.option("--fund-id", default=None, type=int, help="Fund id (default: latest)")
@click.pass_context
def balances(ctx: click.Context, fund_id: Optional[int]) -> None:
    """Show MLN and ETH token balances of investor, manager, and fund."""
    session = _session(ctx)
    try:
        fund_id, fund = _fund(session, fund_id)
        sheet = session.balances(fund)
        shares = fund.shares_of(session.investor)
    except FundSharesError as exc:
        _fail(exc)
    click.echo(f"  Fund #{fund_id} ({fund.address})")
    for holder in ("investor", "manager", "fund"):
        row = getattr(sheet, holder)
        click.echo(f"  {holder:<9} MLN {row.mln_token:>24}  ETH {row.eth_token:>24}")
    click.echo(f"  Investor shares: {shares}")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
