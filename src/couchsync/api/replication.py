from __future__ import annotations

import asyncio
from datetime import timedelta
from time import time
from typing import TYPE_CHECKING, Final, cast

from opentelemetry.trace import get_tracer

from couchsync.api.error import (
    CouchBadResponseError,
    CouchNotFoundError,
    CouchTargetUnknownError,
    CouchTimeoutError,
)
from couchsync.api.error_types import CouchErrorBody
from couchsync.api.replication_types import (
    ReplicationRequest,
    ReplicationStartResponse,
    ReplicationState,
)
from couchsync.logging import couch_info, couch_trace
from couchsync.version import VERSION

if TYPE_CHECKING:
    from couchsync.api.database import Database

# Some store versions report a missing database this way instead of with a 404
_DB_NOT_FOUND: Final[str] = "db_not_found"

_tracer = get_tracer(__name__, VERSION)


class Replication:
    """
    A one-directional replication session, executed by the store that hosts the
    source database.  Start one with
    :func:`start()<couchsync.api.replication.Replication.start>`.

    The store never notifies anybody when a session ends, so liveness has to be
    polled with :func:`is_active()<couchsync.api.replication.Replication.is_active>`.
    """

    @property
    def source(self) -> Database:
        """Gets the database being replicated from"""
        return self.__source

    @property
    def target(self) -> Database:
        """Gets the database being replicated into"""
        return self.__target

    @property
    def continuous(self) -> bool:
        """Gets whether the replication keeps running until cancelled"""
        return self.__continuous

    @property
    def session_id(self) -> str:
        """Gets the identifier the store assigned to the session (empty until started)"""
        return self.__session_id

    @property
    def state(self) -> ReplicationState:
        """Gets the last known state of the session"""
        return self.__state

    def __init__(self, source: Database, target: Database, continuous: bool):
        self.__source = source
        self.__target = target
        self.__continuous = continuous
        self.__session_id = ""
        self.__state = ReplicationState.CREATED

    def __str__(self) -> str:
        mode = "continuous" if self.__continuous else "one-shot"
        return f"{self.__source.name} -> {self.__target.name} ({mode}, {self.__state})"

    def _request(self, cancel: bool = False) -> ReplicationRequest:
        return ReplicationRequest(
            self.__source.url_with_credentials(),
            self.__target.url_with_credentials(),
            self.__continuous,
            self.__source.server.create_target,
            cancel,
        )

    @classmethod
    async def start(
        cls, source: Database, target: Database, continuous: bool = False
    ) -> Replication:
        """
        Asks the store hosting `source` to replicate it into `target`, which may live
        on another server.  Returns as soon as the store accepts the session; a
        continuous session never completes on its own.

        :param source: The database to replicate from
        :param target: The database to replicate into
        :param continuous: If `True`, the replication keeps running until cancelled
        """
        repl = cls(source, target, continuous)
        with _tracer.start_as_current_span(
            "start_replication",
            attributes={
                "couch.replication.source": source.name,
                "couch.replication.target": target.name,
                "couch.replication.continuous": continuous,
            },
        ):
            try:
                resp = await source.server._send_request(
                    "post", "/_replicate", repl._request()
                )
            except CouchBadResponseError as e:
                if isinstance(e, CouchNotFoundError) or e.error_type == _DB_NOT_FOUND:
                    raise CouchTargetUnknownError(
                        e.code,
                        CouchErrorBody(e.error_type, e.reason) if e.error_type else None,
                        f"Cannot replicate {source.name} -> {target.name}, database unknown",
                    ) from e

                raise

            if not isinstance(resp, dict):
                raise ValueError(
                    "Inappropriate response from server post /_replicate (not JSON)"
                )

            start_resp = ReplicationStartResponse(cast(dict, resp))
            repl.__session_id = start_resp.session_id
            repl.__state = ReplicationState.ACTIVE
            couch_info(f"Started replication {repl} with session '{repl.session_id}'")
            return repl

    async def cancel(self) -> None:
        """
        Asks the store to stop the session.  Cancelling a session that already
        stopped is reported by the store as not found, which is raised as a
        :class:`CouchNotFoundError`; callers cancelling twice should expect it.
        """
        with _tracer.start_as_current_span(
            "cancel_replication",
            attributes={
                "couch.replication.source": self.__source.name,
                "couch.replication.target": self.__target.name,
                "couch.replication.session": self.__session_id,
            },
        ):
            await self.__source.server._send_request(
                "post", "/_replicate", self._request(cancel=True)
            )
            self.__state = ReplicationState.CANCELLED
            couch_info(f"Cancelled replication {self}")

    async def is_active(self) -> bool:
        """
        Returns `True` if the store hosting the source lists a replication task
        belonging to this session
        """
        with _tracer.start_as_current_span(
            "replication_is_active",
            attributes={"couch.replication.session": self.__session_id},
        ):
            tasks = await self.__source.server.active_tasks()
            active = any(t.is_replication_of(self.__session_id) for t in tasks)
            couch_trace(f"Replication {self} active: {active}")
            if not active and self.__state == ReplicationState.ACTIVE:
                self.__state = (
                    ReplicationState.CANCELLED
                    if self.__continuous
                    else ReplicationState.COMPLETED
                )
                couch_info(f"Replication {self} is no longer running")

            return active

    async def wait_until_inactive(
        self,
        interval: timedelta = timedelta(seconds=1),
        timeout: timedelta = timedelta(seconds=30),
    ) -> None:
        """
        Waits for a given timeout, polling at a set interval, until the session is
        no longer running (e.g. a one-shot replication has completed)

        :param interval: The polling interval (default 1s)
        :param timeout: The time limit to wait for the session to stop (default 30s)
        """
        with _tracer.start_as_current_span("wait_until_inactive"):
            assert interval.total_seconds() > 0.0, (
                "Zero interval makes no sense, try again"
            )

            start = time()
            while await self.is_active():
                if time() - start > timeout.total_seconds():
                    raise CouchTimeoutError(
                        f"Timeout waiting for replication {self} to stop"
                    )

                await asyncio.sleep(interval.total_seconds())
