"""
Replication commands for CLI.

pause / resume oplog application on one secondary. ``pause`` without
``--for`` leaves the secondary paused until ``resume`` is run.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import asyncio

import click

from ...config import AdminConfig
from ...core.context import AdminContext
from ...core.types import ServerInstanceHandle
from ..utils import parse_server, run_async

server_argument = click.argument("secondary", callback=parse_server)


@click.group()
def replication() -> None:
    """Pause and resume replication on a replica-set secondary."""


async def _pause(config: AdminConfig, secondary: ServerInstanceHandle, hold: float | None) -> None:
    async with AdminContext(config) as admin:
        admin.require_replica_set()
        controller = admin.replication_controller()
        if hold is None:
            await controller.stop_replication(secondary)
            return
        async with controller.paused(secondary):
            await asyncio.sleep(hold)


async def _resume(config: AdminConfig, secondary: ServerInstanceHandle) -> None:
    async with AdminContext(config) as admin:
        admin.require_replica_set()
        await admin.replication_controller().start_replication(secondary)


@replication.command("pause")
@server_argument
@click.option(
    "--for",
    "hold",
    type=click.FloatRange(min=0),
    default=None,
    help="Resume automatically after this many seconds",
)
@click.pass_context
def pause(ctx: click.Context, secondary: ServerInstanceHandle, hold: float | None) -> None:
    """
    Stop SECONDARY ("host:port") from applying the primary's writes.

    Examples:
        mdb-admin replication pause localhost:27018
        mdb-admin replication pause localhost:27018 --for 30
    """
    run_async(_pause(ctx.obj["config"], secondary, hold), server=str(secondary))
    if hold is None:
        click.echo(click.style(f"⏸  Replication paused on {secondary}", fg="yellow"))
        click.echo(f"Run 'mdb-admin replication resume {secondary}' to resume.")
    else:
        click.echo(
            click.style(f"✅ Replication paused on {secondary} for {hold}s and resumed", fg="green")
        )


@replication.command("resume")
@server_argument
@click.pass_context
def resume(ctx: click.Context, secondary: ServerInstanceHandle) -> None:
    """
    Let SECONDARY ("host:port") apply the primary's writes again.

    Examples:
        mdb-admin replication resume localhost:27018
    """
    run_async(_resume(ctx.obj["config"], secondary), server=str(secondary))
    click.echo(click.style(f"✅ Replication resumed on {secondary}", fg="green"))
