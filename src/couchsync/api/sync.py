from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from opentelemetry.trace import get_tracer

from couchsync.api.error import (
    CouchError,
    CouchInconsistentSyncError,
    CouchSyncCancelError,
)
from couchsync.api.replication import Replication
from couchsync.logging import couch_info, couch_warning
from couchsync.version import VERSION

if TYPE_CHECKING:
    from couchsync.api.database import Database

_tracer = get_tracer(__name__, VERSION)


class Sync:
    """
    A pair of replications keeping two databases in step, `a -> b` and `b -> a`.
    Start one with :func:`start()<couchsync.api.sync.Sync.start>`.
    """

    @property
    def a_to_b(self) -> Replication:
        """Gets the forward replication"""
        return self.__a_to_b

    @property
    def b_to_a(self) -> Replication:
        """Gets the backward replication"""
        return self.__b_to_a

    def __init__(self, a_to_b: Replication, b_to_a: Replication):
        self.__a_to_b = a_to_b
        self.__b_to_a = b_to_a

    @classmethod
    async def start(cls, db_a: Database, db_b: Database, continuous: bool = False) -> Sync:
        """
        Starts `a -> b`, then `b -> a`.  If the second one cannot be started the first
        one is cancelled before the error is raised, so a sync never runs in one
        direction only.  This is not atomic: `a -> b` is already running while
        `b -> a` is being started.

        :param db_a: The first database
        :param db_b: The second database
        :param continuous: If `True`, both replications keep running until cancelled
        """
        with _tracer.start_as_current_span(
            "start_sync",
            attributes={
                "couch.sync.a": db_a.name,
                "couch.sync.b": db_b.name,
                "couch.sync.continuous": continuous,
            },
        ):
            a_to_b = await Replication.start(db_a, db_b, continuous)
            try:
                b_to_a = await Replication.start(db_b, db_a, continuous)
            except Exception:
                try:
                    await a_to_b.cancel()
                except Exception as e:
                    couch_warning(f"Failed to roll back replication {a_to_b}: {e}")

                raise

            couch_info(f"Started sync {db_a.name} <-> {db_b.name}")
            return cls(a_to_b, b_to_a)

    async def is_active(self) -> bool:
        """
        Returns `True` if both replications are running and `False` if neither is.
        If only one of them is running a :class:`CouchInconsistentSyncError` is raised,
        since that only happens when one side was stopped behind the sync's back.
        """
        with _tracer.start_as_current_span("sync_is_active"):
            a_to_b_active = await self.__a_to_b.is_active()
            b_to_a_active = await self.__b_to_a.is_active()
            if a_to_b_active != b_to_a_active:
                raise CouchInconsistentSyncError(
                    a_to_b_active,
                    b_to_a_active,
                    f"Sync {self.__a_to_b.source.name} <-> {self.__a_to_b.target.name} "
                    f"is half running (a->b: {a_to_b_active}, b->a: {b_to_a_active})",
                )

            return a_to_b_active

    async def cancel(self) -> None:
        """
        Cancels both replications.  The second one is cancelled even if cancelling
        the first one fails; any failure is raised afterwards as one
        :class:`CouchSyncCancelError` naming the outcome of both.
        """
        with _tracer.start_as_current_span("cancel_sync"):
            a_to_b_error: Optional[CouchError] = None
            b_to_a_error: Optional[CouchError] = None
            try:
                await self.__a_to_b.cancel()
            except CouchError as e:
                a_to_b_error = e

            try:
                await self.__b_to_a.cancel()
            except CouchError as e:
                b_to_a_error = e

            if a_to_b_error is not None or b_to_a_error is not None:
                couch_warning(
                    f"Failed to cancel sync, a->b: {a_to_b_error}, b->a: {b_to_a_error}"
                )
                raise CouchSyncCancelError(a_to_b_error, b_to_a_error)
