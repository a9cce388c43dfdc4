"""
Topology classification.

TopologyProbe issues one topology-identity command and classifies the
deployment: a response carrying ``setName`` means a replica set, anything
else is treated as standalone. The probe only reports; callers decide
whether replication control is allowed.

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from pymongo.errors import OperationFailure

from ..constants import ADMIN_DATABASE, ERROR_CODE_COMMAND_NOT_FOUND
from ..exceptions import InvalidArgumentError, MongoDBAdminError
from .types import ServerInstanceHandle, TopologyDescription, TopologyKind

if TYPE_CHECKING:
    from ..database.executor import CommandExecutor

logger = logging.getLogger(__name__)


def _parse_hosts(hosts: Iterable[str]) -> list[ServerInstanceHandle]:
    handles = []
    for host in hosts:
        try:
            handles.append(ServerInstanceHandle.parse(host))
        except InvalidArgumentError:
            logger.warning(f"Ignoring unparsable member address {host!r} in hello response")
    return handles


def describe_topology(response: Mapping[str, Any]) -> TopologyDescription:
    """
    Build a TopologyDescription from a hello / isMaster response.

    Secondaries are every listed member (hosts and passives) except the
    primary; arbiters are not data-bearing and are left out.
    """
    set_name = response.get("setName")
    me = ServerInstanceHandle.parse(response["me"]) if response.get("me") else None

    if not set_name:
        return TopologyDescription(kind=TopologyKind.STANDALONE, me=me)

    primary = ServerInstanceHandle.parse(response["primary"]) if response.get("primary") else None
    members = _parse_hosts(list(response.get("hosts", [])) + list(response.get("passives", [])))
    secondaries = tuple(member for member in members if member != primary)

    return TopologyDescription(
        kind=TopologyKind.REPLICA_SET,
        set_name=set_name,
        primary=primary,
        secondaries=secondaries,
        me=me,
    )


class TopologyProbe:
    """
    Classifies the deployment once and remembers the answer.

    ``refresh()`` forces a new round trip (e.g. after a failover).
    """

    def __init__(self, executor: "CommandExecutor") -> None:
        self._executor = executor
        self._description: TopologyDescription | None = None
        self._lock = asyncio.Lock()

    @property
    def description(self) -> TopologyDescription | None:
        """Last probe result, or None before the first probe."""
        return self._description

    async def _hello(self, cancellation: asyncio.Event | None) -> Mapping[str, Any]:
        try:
            return await self._executor.execute(
                ADMIN_DATABASE, {"hello": 1}, cancellation=cancellation
            )
        except OperationFailure as e:
            if e.code != ERROR_CODE_COMMAND_NOT_FOUND:
                raise MongoDBAdminError(
                    f"Topology identity command failed: {e}", context={"code": e.code}
                ) from e
            logger.debug("Server does not support 'hello'; falling back to 'isMaster'")

        try:
            return await self._executor.execute(
                ADMIN_DATABASE, {"isMaster": 1}, cancellation=cancellation
            )
        except OperationFailure as e:
            raise MongoDBAdminError(
                f"Topology identity command failed: {e}", context={"code": e.code}
            ) from e

    async def probe(self, cancellation: asyncio.Event | None = None) -> TopologyDescription:
        """Classify the deployment, reusing the first answer."""
        async with self._lock:
            if self._description is None:
                self._description = await self._probe(cancellation)
            return self._description

    async def refresh(self, cancellation: asyncio.Event | None = None) -> TopologyDescription:
        async with self._lock:
            self._description = await self._probe(cancellation)
            return self._description

    async def _probe(self, cancellation: asyncio.Event | None) -> TopologyDescription:
        response = await self._hello(cancellation)
        description = describe_topology(response)
        logger.info(
            f"Deployment classified as {description.kind.value}"
            + (f" (set '{description.set_name}')" if description.set_name else "")
        )
        return description
