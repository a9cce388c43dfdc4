"""
Index Management Module

Collection-scoped index lifecycle: typed specifications, the IndexManager
facade and its lazy listing cursor.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

from .helpers import generate_index_name, is_id_index_name, keys_to_dict, normalize_keys
from .manager import CollectionSettings, IndexCursor, IndexManager
from .specification import (
    INDEX_SPECIFICATION_SCHEMA,
    IndexDescriptor,
    IndexKeys,
    IndexOptions,
    IndexSpecification,
    coerce_options,
)

__all__ = [
    # Manager
    "IndexManager",
    "IndexCursor",
    "CollectionSettings",
    # Specification types
    "IndexKeys",
    "IndexOptions",
    "IndexSpecification",
    "IndexDescriptor",
    "INDEX_SPECIFICATION_SCHEMA",
    "coerce_options",
    # Helpers
    "generate_index_name",
    "is_id_index_name",
    "keys_to_dict",
    "normalize_keys",
]
