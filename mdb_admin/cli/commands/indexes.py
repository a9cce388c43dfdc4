"""
Index commands for CLI.

list / create / drop against a "database.collection" namespace.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

from pathlib import Path
from typing import Any

import click

from ...config import AdminConfig
from ...core.context import AdminContext
from ...core.types import CollectionNamespace
from ...indexes.helpers import is_id_index_name
from ...indexes.manager import IndexManager
from ...indexes.specification import IndexDescriptor, IndexSpecification
from ..utils import (
    format_output,
    load_definitions_file,
    parse_json_option,
    parse_namespace,
    run_async,
)

namespace_argument = click.argument("namespace", callback=parse_namespace)


def descriptor_to_dict(descriptor: IndexDescriptor) -> dict[str, Any]:
    return {
        "name": descriptor.name,
        "key": descriptor.keys.to_document(),
        **dict(descriptor.options),
    }


@click.group()
def indexes() -> None:
    """Create, drop and list the indexes of a collection."""


async def _list(
    config: AdminConfig, namespace: CollectionNamespace, exclude_id: bool
) -> list[dict[str, Any]]:
    async with AdminContext(config) as admin:
        manager = IndexManager(admin.executor, namespace)
        cursor = await manager.list_indexes()
        descriptors = await cursor.to_list()
    return [
        descriptor_to_dict(d)
        for d in descriptors
        if not (exclude_id and is_id_index_name(d.name))
    ]


@indexes.command("list")
@namespace_argument
@click.option("--exclude-id", is_flag=True, help="Leave the _id_ index out of the listing")
@click.option(
    "--format",
    "format_type",
    type=click.Choice(["json", "pretty"]),
    default="pretty",
    help="Output format",
)
@click.pass_context
def list_indexes(
    ctx: click.Context, namespace: CollectionNamespace, exclude_id: bool, format_type: str
) -> None:
    """
    List the indexes of NAMESPACE ("database.collection").

    Examples:
        mdb-admin indexes list orders_db.orders
        mdb-admin indexes list orders_db.orders --exclude-id --format json
    """
    result = run_async(
        _list(ctx.obj["config"], namespace, exclude_id), namespace=namespace.full_name
    )
    if not result:
        click.echo(f"No indexes on {namespace}")
        return
    click.echo(format_output(result, format_type))


async def _create(
    config: AdminConfig,
    namespace: CollectionNamespace,
    specifications: list[IndexSpecification | dict[str, Any]],
) -> list[str]:
    async with AdminContext(config) as admin:
        manager = IndexManager(admin.executor, namespace)
        return await manager.create_indexes(specifications)


@indexes.command("create")
@namespace_argument
@click.option(
    "--keys",
    callback=parse_json_option,
    help='Key specification as JSON, e.g. \'{"customerId": 1}\' or \'[["a", 1], ["b", -1]]\'',
)
@click.option(
    "--from-file",
    "definitions_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='JSON file with {"keys": ..., "options": ...} definition(s)',
)
@click.option("--name", help="Index name (defaults to the server naming convention)")
@click.option("--unique", is_flag=True, help="Create a unique index")
@click.option("--sparse", is_flag=True, help="Create a sparse index")
@click.option("--hidden", is_flag=True, help="Create the index hidden from the planner")
@click.option("--ttl", type=click.IntRange(min=0), help="expireAfterSeconds for a TTL index")
@click.pass_context
def create_index(
    ctx: click.Context,
    namespace: CollectionNamespace,
    keys: Any,
    definitions_file: Path | None,
    name: str | None,
    unique: bool,
    sparse: bool,
    hidden: bool,
    ttl: int | None,
) -> None:
    """
    Create one index (--keys) or several (--from-file) on NAMESPACE.

    Examples:
        mdb-admin indexes create orders_db.orders --keys '{"customerId": 1}'
        mdb-admin indexes create orders_db.orders --keys '{"email": 1}' --unique
        mdb-admin indexes create orders_db.orders --from-file indexes.json
    """
    if (keys is None) == (definitions_file is None):
        raise click.UsageError("Pass exactly one of --keys or --from-file")

    specifications: list[IndexSpecification | dict[str, Any]]
    if definitions_file is not None:
        specifications = load_definitions_file(definitions_file)
    else:
        options = {
            "name": name,
            "unique": unique or None,
            "sparse": sparse or None,
            "hidden": hidden or None,
            "expireAfterSeconds": ttl,
        }
        specifications = [
            {"keys": keys, "options": {k: v for k, v in options.items() if v is not None}}
        ]

    names = run_async(
        _create(ctx.obj["config"], namespace, specifications), namespace=namespace.full_name
    )
    for index_name in names:
        click.echo(click.style(f"✅ Index '{index_name}' present on {namespace}", fg="green"))


async def _drop(
    config: AdminConfig, namespace: CollectionNamespace, name: str | None, keys: Any
) -> str:
    async with AdminContext(config) as admin:
        manager = IndexManager(admin.executor, namespace)
        if name is not None:
            await manager.drop_index_by_name(name)
            return name
        return await manager.drop_index_by_keys(keys)


@indexes.command("drop")
@namespace_argument
@click.option("--name", help="Name of the index to drop")
@click.option("--keys", callback=parse_json_option, help="Key specification of the index, as JSON")
@click.pass_context
def drop_index(
    ctx: click.Context, namespace: CollectionNamespace, name: str | None, keys: Any
) -> None:
    """
    Drop one index of NAMESPACE by --name or by --keys.

    Examples:
        mdb-admin indexes drop orders_db.orders --name customerId_1
        mdb-admin indexes drop orders_db.orders --keys '{"customerId": 1}'
    """
    if (name is None) == (keys is None):
        raise click.UsageError("Pass exactly one of --name or --keys")

    dropped = run_async(
        _drop(ctx.obj["config"], namespace, name, keys), namespace=namespace.full_name
    )
    click.echo(click.style(f"✅ Dropped index '{dropped}' from {namespace}", fg="green"))
