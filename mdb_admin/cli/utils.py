"""
Utility functions for CLI commands.

This module provides shared utilities for CLI operations.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import asyncio
import json
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import click

from ..core.types import CollectionNamespace, ServerInstanceHandle
from ..exceptions import InvalidArgumentError, MongoDBAdminError
from ..observability import operation_context, set_correlation_id


def run_async(coroutine: Coroutine[Any, Any, Any], **context: Any) -> Any:
    """
    Run a command coroutine to completion under a fresh correlation ID.

    ``context`` (namespace, server, ...) is attached to every contextual log
    record emitted while the command runs.

    Raises:
        click.ClickException: If the coroutine raised a MongoDBAdminError
    """
    set_correlation_id()
    with operation_context(**context):
        try:
            return asyncio.run(coroutine)
        except MongoDBAdminError as e:
            raise click.ClickException(f"{type(e).__name__}: {e}") from e


def parse_namespace(ctx: click.Context, param: click.Parameter, value: str) -> CollectionNamespace:
    """click callback: "db.collection" -> CollectionNamespace."""
    try:
        return CollectionNamespace.parse(value)
    except InvalidArgumentError as e:
        raise click.BadParameter(e.message) from e


def parse_server(ctx: click.Context, param: click.Parameter, value: str) -> ServerInstanceHandle:
    """click callback: "host:port" -> ServerInstanceHandle."""
    try:
        return ServerInstanceHandle.parse(value)
    except InvalidArgumentError as e:
        raise click.BadParameter(e.message) from e


def parse_json_option(ctx: click.Context, param: click.Parameter, value: str | None) -> Any:
    """click callback for options carrying inline JSON (e.g. --keys)."""
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Invalid JSON: {e}") from e


def load_definitions_file(file_path: Path) -> list[dict[str, Any]]:
    """
    Load declarative index definitions from a JSON file.

    The file holds one definition object or a list of them.

    Raises:
        click.ClickException: If the file is missing or is not valid JSON
    """
    if not file_path.exists():
        raise click.ClickException(f"Definitions file not found: {file_path}")

    try:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"Invalid JSON in definitions file: {e}") from e

    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        raise click.ClickException("Definitions file must hold an object or a list of objects")
    return data


def format_output(data: Any, format_type: str) -> str:
    """
    Format command output.

    Args:
        data: JSON-serializable result
        format_type: Output format ('json' or 'pretty')
    """
    if format_type == "pretty" and isinstance(data, list):
        return "\n".join(_pretty_line(item) for item in data)
    if format_type == "pretty" and isinstance(data, dict):
        return "\n".join(f"{key}: {_pretty_value(value)}" for key, value in data.items())
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


def _pretty_line(item: Any) -> str:
    if isinstance(item, dict) and "name" in item:
        extras = {k: v for k, v in item.items() if k != "name"}
        return f"{item['name']}  " + "  ".join(
            f"{k}={_pretty_value(v)}" for k, v in extras.items()
        )
    return _pretty_value(item)


def _pretty_value(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)
