"""
Core value types and topology classification.

AdminContext lives in ``mdb_admin.core.context`` and is re-exported from the
package root.
"""

from .topology import TopologyProbe, describe_topology
from .types import (
    CollectionNamespace,
    ServerInstanceHandle,
    TopologyDescription,
    TopologyKind,
)

__all__ = [
    "CollectionNamespace",
    "ServerInstanceHandle",
    "TopologyDescription",
    "TopologyKind",
    "TopologyProbe",
    "describe_topology",
]
