from __future__ import annotations

from json import dumps
from typing import TYPE_CHECKING, Any, Final, Optional, cast
from urllib.parse import quote

from opentelemetry.trace import get_tracer

from couchsync.api.conflict import Conflict, conflict_for, conflicts, conflicts_count
from couchsync.api.database_types import (
    BulkResultEntry,
    DesignDocument,
    InsertResult,
    ViewDefinition,
    ViewResult,
)
from couchsync.api.document import DocBulk, DynamicDoc, Identifiable, from_body
from couchsync.api.error import CouchBulkPartialFailureError, CouchNotFoundError
from couchsync.api.error_types import CouchErrorBody
from couchsync.api.replication import Replication
from couchsync.api.sync import Sync
from couchsync.assertions import _assert_not_blank, _assert_not_empty
from couchsync.logging import couch_info, couch_warning
from couchsync.version import VERSION

if TYPE_CHECKING:
    from couchsync.api.server import CouchServer

# Parameters whose values the store parses as JSON (so strings must be quoted)
_JSON_PARAMS: Final[frozenset[str]] = frozenset(
    ["key", "keys", "startkey", "endkey", "start_key", "end_key"]
)


def _encode_options(options: Optional[dict[str, Any]]) -> Optional[dict[str, str]]:
    if not options:
        return None

    ret_val: dict[str, str] = {}
    for k, v in options.items():
        if k in _JSON_PARAMS:
            ret_val[k] = dumps(v)
        elif isinstance(v, bool):
            ret_val[k] = "true" if v else "false"
        elif isinstance(v, (int, float, str)):
            ret_val[k] = str(v)
        else:
            ret_val[k] = dumps(v)

    return ret_val


class Database:
    """
    A handle to one database on a store server.  Creating the handle makes no
    request; use :func:`exists()<couchsync.api.database.Database.exists>` and
    :func:`create()<couchsync.api.database.Database.create>` as needed.
    """

    @property
    def name(self) -> str:
        """Gets the name of the database"""
        return self.__name

    @property
    def server(self) -> CouchServer:
        """Gets the server that the database lives on"""
        return self.__server

    @property
    def url(self) -> str:
        """Gets the absolute URL of the database (without credentials)"""
        return f"{self.__server.url}{self._path()}"

    def url_with_credentials(self) -> str:
        """Gets the absolute URL of the database with the server credentials embedded"""
        return self.__server.url_with_credentials(quote(self.__name, safe=""))

    def __init__(self, server: CouchServer, name: str):
        self.__server = server
        self.__name = name
        self.__tracer = get_tracer(__name__, VERSION)

    def __str__(self) -> str:
        return self.url

    def _path(self, suffix: str = "") -> str:
        return f"/{quote(self.__name, safe='')}{suffix}"

    def _doc_path(self, id: str) -> str:
        _assert_not_blank(id, "id")
        if id.startswith("_design/"):
            return self._path(f"/_design/{quote(id[8:], safe='')}")

        return self._path(f"/{quote(id, safe='')}")

    def _view_path(self, design: str, view: str) -> str:
        return self._path(
            f"/_design/{quote(design, safe='')}/_view/{quote(view, safe='')}"
        )

    async def create(self) -> None:
        """Creates the database on the server"""
        with self.__tracer.start_as_current_span(
            "create_database", attributes={"couch.database.name": self.__name}
        ):
            await self.__server._send_request("put", self._path())

    async def drop(self) -> None:
        """Deletes the database, and every document in it, from the server"""
        with self.__tracer.start_as_current_span(
            "drop_database", attributes={"couch.database.name": self.__name}
        ):
            await self.__server._send_request("delete", self._path())

    async def exists(self) -> bool:
        """Returns `True` if the database exists on the server"""
        return await self.__server.head_check(self._path())

    async def info(self) -> dict:
        """Gets the information document of the database (doc count, update seq...)"""
        resp = await self.__server._send_request("get", self._path())
        if not isinstance(resp, dict):
            raise ValueError(
                f"Inappropriate response from server get /{self.__name} (not JSON)"
            )

        return cast(dict, resp)

    async def insert(self, doc: Identifiable) -> None:
        """
        Writes a document.  If it has no key yet, a new document is created with a
        key assigned by the store, otherwise the existing document is edited (the
        revision token of `doc` is the precondition).  Either way `doc` carries the
        new key and revision token afterwards.

        :param doc: The document to write
        """
        id, _ = doc.id_rev()
        with self.__tracer.start_as_current_span(
            "insert",
            attributes={"couch.database.name": self.__name, "couch.document.id": id},
        ):
            if not id:
                resp = await self.__server._send_request("post", self._path(), doc)
            else:
                resp = await self.__server._send_request(
                    "put", self._doc_path(id), doc
                )

            if not isinstance(resp, dict):
                raise ValueError("Inappropriate response from server insert (not JSON)")

            result = InsertResult(cast(dict, resp))
            doc.set_id_rev(result.id, result.rev)

    async def insert_bulk(self, bulk: DocBulk, all_or_nothing: bool = False) -> DocBulk:
        """
        Writes a group of documents in a single request.  Every document that was
        written carries its new key and revision token afterwards.  If any document
        was rejected, a :class:`CouchBulkPartialFailureError` carrying the rejected
        documents is raised; otherwise an empty :class:`DocBulk` is returned.

        :param bulk: The documents to write
        :param all_or_nothing: If `True`, the store is asked to write all of them or none
        """
        _assert_not_empty(bulk.docs, "bulk.docs")
        with self.__tracer.start_as_current_span(
            "insert_bulk",
            attributes={"couch.database.name": self.__name, "couch.bulk.size": len(bulk)},
        ):
            bulk.all_or_nothing = all_or_nothing
            resp = await self.__server._send_request(
                "post", self._path("/_bulk_docs"), bulk
            )
            if not isinstance(resp, list):
                raise ValueError(
                    "Inappropriate response from server _bulk_docs (not a list)"
                )

            failed = DocBulk()
            errors: list[CouchErrorBody] = []
            for doc, r in zip(bulk.docs, cast(list, resp)):
                entry = BulkResultEntry(cast(dict, r))
                if entry.ok:
                    doc.set_id_rev(entry.id, cast(str, entry.rev))
                    continue

                failed.add(doc)
                errors.append(
                    entry.error
                    if entry.error is not None
                    else CouchErrorBody("unknown", "no revision returned")
                )

            if len(failed) > 0:
                couch_warning(
                    f"Bulk write to {self.__name} incomplete, {len(failed)} of {len(bulk)} rejected"
                )
                raise CouchBulkPartialFailureError(
                    failed,
                    errors,
                    f"Bulk insert incomplete, {len(failed)} of {len(bulk)} documents rejected "
                    f"({', '.join(str(e) for e in errors)})",
                )

            return failed

    async def delete(self, id: str, rev: str) -> None:
        """
        Deletes a document

        :param id: The key of the document
        :param rev: The revision token being deleted
        """
        with self.__tracer.start_as_current_span(
            "delete",
            attributes={"couch.database.name": self.__name, "couch.document.id": id},
        ):
            await self.__server._send_request(
                "delete", self._doc_path(id), params={"rev": rev}
            )

    async def _retrieve(
        self, id: str, params: Optional[dict[str, str]] = None
    ) -> Any:
        with self.__tracer.start_as_current_span(
            "retrieve",
            attributes={"couch.database.name": self.__name, "couch.document.id": id},
        ):
            return await self.__server._send_request(
                "get", self._doc_path(id), params=params
            )

    async def retrieve(self, id: str, doc_type: type = DynamicDoc) -> Any:
        """
        Gets the current revision of a document

        :param id: The key of the document
        :param doc_type: The representation to return, :class:`DynamicDoc` or a :class:`Doc` subclass
        """
        resp = await self._retrieve(id)
        if not isinstance(resp, dict):
            raise ValueError(f"Inappropriate response from server get {id} (not JSON)")

        return from_body(cast(dict, resp), doc_type)

    async def retrieve_revision(
        self, id: str, rev: str, doc_type: type = DynamicDoc
    ) -> Any:
        """
        Gets a specific revision of a document

        :param id: The key of the document
        :param rev: The revision token to get
        :param doc_type: The representation to return, :class:`DynamicDoc` or a :class:`Doc` subclass
        """
        resp = await self._retrieve(id, {"rev": rev})
        if not isinstance(resp, dict):
            raise ValueError(f"Inappropriate response from server get {id} (not JSON)")

        return from_body(cast(dict, resp), doc_type)

    async def open_revisions(self, id: str) -> list[DynamicDoc]:
        """
        Gets every currently reachable leaf revision of a document, including the
        ones marked deleted

        :param id: The key of the document
        """
        resp = await self._retrieve(id, {"open_revs": "all"})
        if not isinstance(resp, list):
            raise ValueError(
                f"Inappropriate response from server get {id}?open_revs=all (not a list)"
            )

        return [
            DynamicDoc(cast(dict, r["ok"]))
            for r in cast(list, resp)
            if isinstance(r, dict) and isinstance(r.get("ok"), dict)
        ]

    async def query(
        self, design: str, view: str, options: Optional[dict[str, Any]] = None
    ) -> ViewResult:
        """
        Queries an aggregate index (view)

        :param design: The design document name (without the _design/ prefix)
        :param view: The view name
        :param options: Query options such as `reduce`, `key` or `limit`
        """
        with self.__tracer.start_as_current_span(
            "query",
            attributes={
                "couch.database.name": self.__name,
                "couch.design.name": design,
                "couch.view.name": view,
            },
        ):
            resp = await self.__server._send_request(
                "get", self._view_path(design, view), params=_encode_options(options)
            )
            if not isinstance(resp, dict):
                raise ValueError(
                    f"Inappropriate response from server query {design}/{view} (not JSON)"
                )

            return ViewResult(cast(dict, resp))

    async def has_view(self, design: str, view: str) -> bool:
        """
        Returns `True` if the given view exists

        :param design: The design document name (without the _design/ prefix)
        :param view: The view name
        """
        return await self.__server.head_check(self._view_path(design, view))

    async def create_view(
        self,
        design: str,
        view: str,
        map_source: str,
        reduce_source: Optional[str] = None,
    ) -> None:
        """
        Adds (or replaces) a view definition in a design document, creating the design
        document if needed.  Other views already in the design document are kept.

        :param design: The design document name (without the _design/ prefix)
        :param view: The view name
        :param map_source: The source of the map function
        :param reduce_source: The source of the reduce function, or a built-in such as `_count`
        """
        with self.__tracer.start_as_current_span(
            "create_view",
            attributes={
                "couch.database.name": self.__name,
                "couch.design.name": design,
                "couch.view.name": view,
            },
        ):
            ddoc_id = f"_design/{design}"
            try:
                existing = await self._retrieve(ddoc_id)
            except CouchNotFoundError:
                existing = None

            ddoc = DesignDocument(
                design, cast(dict, existing) if isinstance(existing, dict) else None
            )
            ddoc.add_view(view, ViewDefinition(map_source, reduce_source))
            await self.__server._send_request("put", self._doc_path(ddoc_id), ddoc)
            couch_info(f"Created view {ddoc_id}/_view/{view} in {self.__name}")

    async def conflict_for(self, id: str) -> Optional[Conflict]:
        """
        See :func:`conflict_for()<couchsync.api.conflict.conflict_for>`

        :param id: The key of the document
        """
        return await conflict_for(self, id)

    async def conflicts(self, force_index: bool = False) -> list[str]:
        """
        See :func:`conflicts()<couchsync.api.conflict.conflicts>`

        :param force_index: If `True`, the conflict index is created when missing
        """
        return await conflicts(self, force_index)

    async def conflicts_count(self, force_index: bool = False) -> int:
        """
        See :func:`conflicts_count()<couchsync.api.conflict.conflicts_count>`

        :param force_index: If `True`, the conflict index is created when missing
        """
        return await conflicts_count(self, force_index)

    async def replicate_to(self, target: Database, continuous: bool = False) -> Replication:
        """
        See :func:`Replication.start()<couchsync.api.replication.Replication.start>`

        :param target: The database to replicate into
        :param continuous: If `True`, the replication keeps running until cancelled
        """
        return await Replication.start(self, target, continuous)

    async def sync_with(self, target: Database, continuous: bool = False) -> Sync:
        """
        See :func:`Sync.start()<couchsync.api.sync.Sync.start>`

        :param target: The database to synchronize with
        :param continuous: If `True`, both replications keep running until cancelled
        """
        return await Sync.start(self, target, continuous)
