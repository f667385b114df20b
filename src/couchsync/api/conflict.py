from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from opentelemetry.trace import get_tracer

from couchsync.api.document import DocBulk, DynamicDoc, Identifiable, from_body
from couchsync.api.error import (
    CouchBulkPartialFailureError,
    CouchConflictError,
    CouchLostUpdateError,
    CouchNotFoundError,
)
from couchsync.api.error_types import CouchErrorBody, StoreErrorKind
from couchsync.logging import couch_info, couch_warning
from couchsync.version import VERSION

if TYPE_CHECKING:
    from couchsync.api.database import Database

_tracer = get_tracer(__name__, VERSION)


class Conflict:
    """
    Two or more open (non-deleted) leaf revisions of the same document.  Get one from
    :func:`conflict_for()<couchsync.api.conflict.conflict_for>` and resolve it with
    :func:`solve_with()<couchsync.api.conflict.Conflict.solve_with>`.

    .. note:: A handle is good for one resolution.  Afterwards it holds no revisions
        and solving it again does nothing; ask for the conflict again instead of
        reusing a handle, since another party may have changed the document.
    """

    @property
    def key(self) -> str:
        """Gets the key of the conflicted document"""
        return self.__key

    @property
    def database(self) -> Database:
        """Gets the database the conflict was found in"""
        return self.__database

    @property
    def revisions_count(self) -> int:
        """Gets the number of conflicting open revisions"""
        return len(self.__revisions)

    @property
    def is_real(self) -> bool:
        """Gets whether there is anything to resolve (at least two open revisions)"""
        return len(self.__revisions) > 1

    def __init__(self, database: Database, key: str, revisions: list[DynamicDoc]):
        self.__database = database
        self.__key = key
        self.__revisions = revisions

    def __repr__(self) -> str:
        revs = [r.id_rev()[1] for r in self.__revisions]
        return f"Conflict(key={self.__key!r}, revisions={revs})"

    def revisions(self, doc_type: type = DynamicDoc) -> list[Any]:
        """
        Gets copies of the conflicting revisions, in the order the store returned them

        :param doc_type: The representation to return, :class:`DynamicDoc` or a :class:`Doc` subclass
        """
        return [from_body(dict(r), doc_type) for r in self.__revisions]

    async def solve_with(self, final_doc: Identifiable) -> None:
        """
        Resolves the conflict with a caller-chosen final document.  The final document
        becomes the next revision of the first open branch, and every other open
        branch is closed by deleting its leaf, all in one bulk write.  Afterwards
        `final_doc` carries the conflicted key and its new revision token.

        If the store rejects any of it because another party changed the document in
        the meantime, a :class:`CouchLostUpdateError` is raised and this handle is
        left untouched; ask for the conflict again and retry.

        :param final_doc: The document that should win
        """
        if not self.is_real:
            return

        with _tracer.start_as_current_span(
            "solve_conflict",
            attributes={
                "couch.database.name": self.__database.name,
                "couch.document.id": self.__key,
                "couch.conflict.revisions": self.revisions_count,
            },
        ):
            id, rev = self.__revisions[0].id_rev()
            final_doc.set_id_rev(id, rev)
            leaves = DocBulk([final_doc])
            for leaf in self.__revisions[1:]:
                closed = DynamicDoc(leaf)
                closed["_deleted"] = True
                leaves.add(closed)

            try:
                await self.__database.insert_bulk(leaves, all_or_nothing=True)
            except CouchConflictError as e:
                couch_warning(f"Lost update while solving conflict on {self.__key}")
                raise CouchLostUpdateError(
                    self.__key,
                    leaves,
                    [CouchErrorBody(e.error_type or StoreErrorKind.CONFLICT, e.reason)],
                    f"Conflict on {self.__key} was changed by another party, ask for it again",
                ) from e
            except CouchBulkPartialFailureError as e:
                if any(
                    StoreErrorKind.equal(err.error, StoreErrorKind.CONFLICT)
                    for err in e.errors
                ):
                    couch_warning(f"Lost update while solving conflict on {self.__key}")
                    raise CouchLostUpdateError(
                        self.__key,
                        e.failed,
                        e.errors,
                        f"Conflict on {self.__key} was changed by another party, ask for it again",
                    ) from e

                raise

            couch_info(
                f"Solved conflict on {self.__key} ({self.revisions_count} revisions) with {final_doc.id_rev()[1]}"
            )
            self.__revisions = []


async def conflict_for(db: Database, key: str) -> Optional[Conflict]:
    """
    Gets the conflicting revisions of a document.  Returns `None` if the document
    has exactly one open revision, which is the normal state.

    .. note:: A document whose every branch is deleted yields a :class:`Conflict`
        with no revisions, which is not real and should be treated as no conflict.

    :param db: The database to look in
    :param key: The key of the document
    """
    with _tracer.start_as_current_span(
        "conflict_for",
        attributes={"couch.database.name": db.name, "couch.document.id": key},
    ):
        open_leaves = [r for r in await db.open_revisions(key) if not r.is_deleted]
        if len(open_leaves) == 1:
            return None

        if len(open_leaves) > 1:
            couch_info(f"Found {len(open_leaves)} conflicting revisions of {key}")

        return Conflict(db, key, open_leaves)


async def create_conflict_index(db: Database) -> None:
    """
    Creates the view that emits one row per conflicted document and counts them on
    reduce.  On a large database the first query of the view can take a long time.

    :param db: The database to create the view in
    """
    index = db.server.conflict_index
    await db.create_view(
        index.design, index.view, index.map_source, index.reduce_source
    )


async def ensure_conflict_index(db: Database, force_index: bool) -> None:
    """
    Makes sure the conflict view exists.  If it is missing it is created when
    `force_index` is set, otherwise a :class:`CouchNotFoundError` is raised.

    :param db: The database to check
    :param force_index: Whether to create the view when it is missing
    """
    index = db.server.conflict_index
    if await db.has_view(index.design, index.view):
        return

    if not force_index:
        raise CouchNotFoundError(
            404,
            CouchErrorBody(StoreErrorKind.NOT_FOUND, "missing_named_view"),
            f"Conflict index {index} does not exist in {db.name}",
        )

    couch_info(f"Conflict index {index} missing in {db.name}, creating it")
    await create_conflict_index(db)


async def conflicts(db: Database, force_index: bool = False) -> list[str]:
    """
    Gets the keys of every conflicted document in a database

    :param db: The database to scan
    :param force_index: If `True`, the conflict index is created when missing
    """
    with _tracer.start_as_current_span(
        "conflicts", attributes={"couch.database.name": db.name}
    ):
        await ensure_conflict_index(db, force_index)
        index = db.server.conflict_index
        result = await db.query(index.design, index.view, {"reduce": False})
        return [row.id for row in result.rows]


async def conflicts_count(db: Database, force_index: bool = False) -> int:
    """
    Gets the number of conflicted documents in a database

    :param db: The database to scan
    :param force_index: If `True`, the conflict index is created when missing
    """
    with _tracer.start_as_current_span(
        "conflicts_count", attributes={"couch.database.name": db.name}
    ):
        await ensure_conflict_index(db, force_index)
        index = db.server.conflict_index
        result = await db.query(index.design, index.view, {"reduce": True})
        if len(result.rows) > 0:
            return result.rows[0].value_int()

        return 0
