"""
Value types shared by the index manager, the replication controller and the
topology probe.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..constants import (
    INVALID_DATABASE_NAME_CHARS,
    MAX_COLLECTION_NAME_LENGTH,
    MAX_DATABASE_NAME_LENGTH,
)
from ..exceptions import InvalidArgumentError

DEFAULT_MONGODB_PORT = 27017


@dataclass(frozen=True)
class CollectionNamespace:
    """
    A (database, collection) pair identifying the target of index operations.

    Validated at construction; immutable afterwards.
    """

    database_name: str
    collection_name: str

    def __post_init__(self) -> None:
        if not isinstance(self.database_name, str) or not self.database_name:
            raise InvalidArgumentError(
                "Database name must be a non-empty string",
                context={"database_name": self.database_name},
            )
        if len(self.database_name) > MAX_DATABASE_NAME_LENGTH:
            raise InvalidArgumentError(
                f"Database name exceeds {MAX_DATABASE_NAME_LENGTH} characters",
                context={"database_name": self.database_name},
            )
        bad_chars = [c for c in INVALID_DATABASE_NAME_CHARS if c in self.database_name]
        if bad_chars or "\x00" in self.database_name:
            raise InvalidArgumentError(
                f"Database name '{self.database_name}' contains invalid characters",
                context={"invalid_chars": bad_chars},
            )
        if not isinstance(self.collection_name, str) or not self.collection_name:
            raise InvalidArgumentError(
                "Collection name must be a non-empty string",
                context={"collection_name": self.collection_name},
            )
        if "\x00" in self.collection_name or "$" in self.collection_name:
            raise InvalidArgumentError(
                f"Collection name '{self.collection_name}' contains invalid characters",
                context={"collection_name": self.collection_name},
            )
        if len(self.full_name) > MAX_COLLECTION_NAME_LENGTH:
            raise InvalidArgumentError(
                f"Namespace exceeds {MAX_COLLECTION_NAME_LENGTH} characters",
                context={"namespace": self.full_name},
            )

    @classmethod
    def parse(cls, full_name: str) -> "CollectionNamespace":
        """
        Parse a "database.collection" string.

        The collection part may itself contain dots ("db.system.profile").
        """
        if not isinstance(full_name, str) or "." not in full_name:
            raise InvalidArgumentError(
                f"Namespace must be of the form 'database.collection', got {full_name!r}"
            )
        database_name, collection_name = full_name.split(".", 1)
        return cls(database_name, collection_name)

    @property
    def full_name(self) -> str:
        return f"{self.database_name}.{self.collection_name}"

    def __str__(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class ServerInstanceHandle:
    """
    Reference to one specific member of the deployment.

    Used to route commands to that node rather than to any eligible member.
    """

    host: str
    port: int = DEFAULT_MONGODB_PORT

    def __post_init__(self) -> None:
        if not self.host:
            raise InvalidArgumentError("Server host must not be empty")
        if not isinstance(self.port, int) or not 0 < self.port < 65536:
            raise InvalidArgumentError(
                f"Server port must be between 1 and 65535, got {self.port!r}",
                context={"host": self.host},
            )

    @classmethod
    def parse(cls, address: str) -> "ServerInstanceHandle":
        """Parse "host", "host:port" or "[ipv6]:port"."""
        if not address:
            raise InvalidArgumentError("Server address must not be empty")
        if address.startswith("["):
            host, _, rest = address[1:].partition("]")
            port = rest.lstrip(":")
        elif address.count(":") == 1:
            host, _, port = address.partition(":")
        else:
            host, port = address, ""
        if not port:
            return cls(host)
        try:
            return cls(host, int(port))
        except ValueError as e:
            raise InvalidArgumentError(
                f"Invalid port in server address {address!r}"
            ) from e

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, self.port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


class TopologyKind(str, Enum):
    """Deployment classification produced by the topology probe."""

    REPLICA_SET = "ReplicaSet"
    STANDALONE = "Standalone"


@dataclass(frozen=True)
class TopologyDescription:
    """Result of one topology-identity round trip."""

    kind: TopologyKind
    set_name: str | None = None
    primary: ServerInstanceHandle | None = None
    secondaries: tuple[ServerInstanceHandle, ...] = field(default_factory=tuple)
    me: ServerInstanceHandle | None = None

    @property
    def is_replica_set(self) -> bool:
        return self.kind is TopologyKind.REPLICA_SET
