"""
Helper functions for index management.

Shared key normalisation and naming used by the specification types and the
index manager.
"""

import logging
from collections.abc import Mapping
from typing import Any

from ..constants import ID_INDEX_NAME

logger = logging.getLogger(__name__)


def normalize_keys(
    keys: str | Mapping[str, Any] | list[tuple[str, Any]] | tuple[tuple[str, Any], ...],
) -> list[tuple[str, Any]]:
    """
    Normalize index keys to a consistent format.

    Args:
        keys: A single field name, a mapping, or a sequence of
            (field, direction) pairs

    Returns:
        List of (field_name, direction) tuples
    """
    if isinstance(keys, str):
        return [(keys, 1)]
    if isinstance(keys, Mapping):
        return [(k, v) for k, v in keys.items()]
    pairs = []
    for item in keys:
        if isinstance(item, str):
            pairs.append((item, 1))
        else:
            field, direction = item
            pairs.append((field, direction))
    return pairs


def normalize_direction(direction: Any) -> Any:
    """Collapse numeric directions reported by the server as doubles (1.0 -> 1)."""
    if isinstance(direction, float) and direction.is_integer():
        return int(direction)
    return direction


def keys_to_dict(keys: str | Mapping[str, Any] | list[tuple[str, Any]]) -> dict[str, Any]:
    """
    Convert index keys to an (ordered) dictionary for command documents.

    Args:
        keys: Index keys in any form accepted by normalize_keys()

    Returns:
        Dictionary representation of keys
    """
    return {k: v for k, v in normalize_keys(keys)}


def is_id_index_name(name: str) -> bool:
    return name == ID_INDEX_NAME


def generate_index_name(keys: str | Mapping[str, Any] | list[tuple[str, Any]]) -> str:
    """
    Generate the default index name the server would assign.

    Format: field1_1_field2_-1 (1 for ascending, -1 for descending, the
    directive itself for "text", "2dsphere", ...).
    """
    name_parts = []
    for key, direction in normalize_keys(keys):
        name_parts.append(f"{key}_{normalize_direction(direction)}")
    return "_".join(name_parts)
