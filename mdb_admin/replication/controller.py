"""
Replication pause / resume for replica-set secondaries.

Pausing enables a server fail point (rsSyncApplyStop by default) on one
secondary so it stops applying the primary's oplog; resuming disables it.
Fail-point state lives on each node, so every toggle is sent over a request
pinned to the targeted secondary and is an authoritative round trip: the
client never caches the pause state.

Typical use in a test scenario:

    controller = ReplicationController(executor)
    async with await controller.stop_replication(secondary):
        ...  # writes on the primary are not applied on `secondary`

This module is part of MDB_ADMIN - MongoDB Admin Control.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator

from pymongo.errors import OperationFailure

from ..constants import (
    ADMIN_DATABASE,
    DEFAULT_FAIL_POINT,
    FAIL_POINT_MODE_OFF,
    FAIL_POINT_MODE_ON,
)
from ..core.types import ServerInstanceHandle
from ..database.executor import CommandExecutor
from ..exceptions import ReplicationControlError, TransportError
from ..observability import get_logger as get_contextual_logger
from ..observability import log_operation

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)


class ReplicationGuard:
    """
    Single-use token returned by ReplicationController.stop_replication().

    Only ever created after the pause was confirmed by the secondary. The
    first release() resumes replication; later calls do nothing. Used as an
    async context manager it releases on exit, even when the body raised.
    """

    def __init__(self, controller: "ReplicationController", secondary: ServerInstanceHandle):
        self._controller = controller
        self._secondary = secondary
        self._released = False

    @property
    def secondary(self) -> ServerInstanceHandle:
        return self._secondary

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        """
        Resume replication on the guarded secondary, at most once.

        Raises:
            ReplicationControlError: The resume was rejected; the secondary
                may still be paused
        """
        if self._released:
            logger.debug(f"Replication guard for {self._secondary} already released")
            return
        # Flag first so a concurrent or repeated release never issues a second resume
        self._released = True
        await self._controller.start_replication(self._secondary)

    async def __aenter__(self) -> "ReplicationGuard":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await self.release()
        except ReplicationControlError:
            if exc is not None:
                contextual_logger.critical(
                    "Resume failed while unwinding an error; secondary may still be paused",
                    extra={"server": str(self._secondary), "body_error": repr(exc)},
                )
            raise

    def __repr__(self) -> str:
        state = "released" if self._released else "active"
        return f"ReplicationGuard(secondary={self._secondary}, {state})"


class ReplicationController:
    """
    Deterministic, reversible replication pause for test scenarios.

    Callers must only use it against a replica set (see
    AdminContext.require_replica_set()); the controller itself does not check.
    """

    def __init__(self, executor: CommandExecutor, fail_point: str = DEFAULT_FAIL_POINT) -> None:
        """
        Args:
            executor: Command executor able to pin requests to one member
            fail_point: Name of the fail point that stops oplog application
        """
        self._executor = executor
        self._fail_point = fail_point

    @property
    def fail_point(self) -> str:
        return self._fail_point

    async def _configure_fail_point(
        self,
        secondary: ServerInstanceHandle,
        mode: str,
        cancellation: asyncio.Event | None,
    ) -> None:
        command = {"configureFailPoint": self._fail_point, "mode": mode}
        start_time = time.time()
        try:
            async with self._executor.pinned(secondary) as request:
                response = await request.execute(ADMIN_DATABASE, command, cancellation=cancellation)
        except OperationFailure as e:
            logger.exception(
                f"Secondary {secondary} rejected configureFailPoint "
                f"'{self._fail_point}' mode={mode}"
            )
            raise ReplicationControlError(
                f"Fail point '{self._fail_point}' could not be set to '{mode}': {e}",
                server=str(secondary),
                mode=mode,
                context={"code": e.code},
            ) from e
        except TransportError as e:
            raise ReplicationControlError(
                f"Secondary {secondary} unreachable while setting fail point to '{mode}'",
                server=str(secondary),
                mode=mode,
            ) from e

        if not response or response.get("ok") != 1:
            raise ReplicationControlError(
                f"configureFailPoint returned an unexpected response: {response!r}",
                server=str(secondary),
                mode=mode,
            )

        log_operation(
            logger,
            "replication.configureFailPoint",
            level=logging.DEBUG,
            duration_ms=(time.time() - start_time) * 1000,
            server=str(secondary),
            mode=mode,
        )

    async def stop_replication(
        self,
        secondary: ServerInstanceHandle,
        cancellation: asyncio.Event | None = None,
    ) -> ReplicationGuard:
        """
        Pause oplog application on ``secondary``.

        Returns:
            A guard whose release() resumes replication

        Raises:
            ReplicationControlError: The pause was not confirmed; no guard is
                created and nothing needs resuming
        """
        await self._configure_fail_point(secondary, FAIL_POINT_MODE_ON, cancellation)
        contextual_logger.info(
            "Replication paused",
            extra={"server": str(secondary), "fail_point": self._fail_point},
        )
        return ReplicationGuard(self, secondary)

    async def start_replication(
        self,
        secondary: ServerInstanceHandle,
        cancellation: asyncio.Event | None = None,
    ) -> None:
        """
        Resume oplog application on ``secondary``. No-op if it is not paused.

        Raises:
            ReplicationControlError: The resume was rejected or the
                secondary is unreachable
        """
        await self._configure_fail_point(secondary, FAIL_POINT_MODE_OFF, cancellation)
        contextual_logger.info(
            "Replication resumed",
            extra={"server": str(secondary), "fail_point": self._fail_point},
        )

    @contextlib.asynccontextmanager
    async def paused(
        self,
        secondary: ServerInstanceHandle,
        cancellation: asyncio.Event | None = None,
    ) -> AsyncIterator[ReplicationGuard]:
        """Pause ``secondary`` for the duration of an ``async with`` block."""
        guard = await self.stop_replication(secondary, cancellation=cancellation)
        async with guard:
            yield guard
