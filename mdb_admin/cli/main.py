"""
Main CLI entry point.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import logging

import click

from ..config import AdminConfig
from .commands.indexes import indexes
from .commands.replication import replication
from .commands.topology import topology


@click.group()
@click.option(
    "--uri",
    envvar="MONGO_URI",
    help="MongoDB connection string (defaults to MONGO_URI)",
)
@click.option(
    "--timeout-ms",
    type=click.IntRange(min=1000),
    default=None,
    help="Server selection timeout in milliseconds",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="mdb-admin")
@click.pass_context
def cli(ctx: click.Context, uri: str | None, timeout_ms: int | None, verbose: bool) -> None:
    """
    MDB_ADMIN - MongoDB index and replication control.

    Examples:
        mdb-admin --uri mongodb://localhost:27017 topology
        mdb-admin indexes list orders_db.orders
        mdb-admin replication pause localhost:27018
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = AdminConfig(mongo_uri=uri, server_selection_timeout_ms=timeout_ms)


cli.add_command(topology)
cli.add_command(indexes)
cli.add_command(replication)


if __name__ == "__main__":
    cli()
