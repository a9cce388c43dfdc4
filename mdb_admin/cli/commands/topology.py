"""
Topology command for CLI.

Reports how the deployment behind --uri is classified.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

from typing import Any

import click

from ...config import AdminConfig
from ...core.context import AdminContext
from ...core.types import TopologyDescription
from ..utils import format_output, run_async


def describe(description: TopologyDescription) -> dict[str, Any]:
    return {
        "kind": description.kind.value,
        "set_name": description.set_name,
        "primary": str(description.primary) if description.primary else None,
        "secondaries": [str(s) for s in description.secondaries],
    }


async def _topology(config: AdminConfig) -> dict[str, Any]:
    async with AdminContext(config) as admin:
        return describe(admin.topology)


@click.command()
@click.option(
    "--format",
    "format_type",
    type=click.Choice(["json", "pretty"]),
    default="pretty",
    help="Output format",
)
@click.pass_context
def topology(ctx: click.Context, format_type: str) -> None:
    """
    Classify the deployment as ReplicaSet or Standalone.

    Examples:
        mdb-admin topology
        mdb-admin topology --format json
    """
    result = run_async(_topology(ctx.obj["config"]))
    click.echo(format_output(result, format_type))
