from typing import Any, Optional, cast

from couchsync.api.error_types import CouchErrorBody
from couchsync.api.jsonserializable import JSONSerializable
from couchsync.jsonhelper import _get_typed, _get_typed_nonnull, _get_typed_required


class InsertResult:
    """The result of writing a single document"""

    @property
    def id(self) -> str:
        """Gets the key the document was written under"""
        return self.__id

    @property
    def rev(self) -> str:
        """Gets the new revision token of the document"""
        return self.__rev

    def __init__(self, body: dict):
        self.__id = _get_typed_required(body, "id", str)
        self.__rev = _get_typed_required(body, "rev", str)


class BulkResultEntry:
    """The outcome of one document inside a `_bulk_docs` response"""

    @property
    def id(self) -> str:
        """Gets the key of the document"""
        return self.__id

    @property
    def rev(self) -> Optional[str]:
        """Gets the new revision token, if the write succeeded"""
        return self.__rev

    @property
    def ok(self) -> bool:
        """Gets whether the document was written"""
        return self.__error is None and self.__rev is not None

    @property
    def error(self) -> Optional[CouchErrorBody]:
        """Gets the reason the document was rejected, if it was"""
        return self.__error

    def __init__(self, body: dict):
        self.__id = _get_typed_nonnull(body, "id", str, "")
        self.__rev = _get_typed(body, "rev", str)
        self.__error = CouchErrorBody.create(body)


class ViewResultRow:
    """A single row of an aggregate index query"""

    @property
    def id(self) -> str:
        """Gets the key of the document that emitted the row (empty for reduced rows)"""
        return self.__id

    @property
    def key(self) -> Any:
        """Gets the emitted key"""
        return self.__key

    @property
    def value(self) -> Any:
        """Gets the emitted (or reduced) value"""
        return self.__value

    def value_int(self) -> int:
        """Gets the value as an integer, or 0 if it is not a number"""
        if isinstance(self.__value, bool) or not isinstance(self.__value, (int, float)):
            return 0

        return int(self.__value)

    def __init__(self, body: dict):
        self.__id = _get_typed_nonnull(body, "id", str, "")
        self.__key = body.get("key")
        self.__value = body.get("value")


class ViewResult:
    """The result of querying an aggregate index"""

    @property
    def offset(self) -> int:
        """Gets the offset of the first row (0 for reduced results)"""
        return self.__offset

    @property
    def total_rows(self) -> int:
        """Gets the total number of rows in the index"""
        return self.__total_rows

    @property
    def rows(self) -> list[ViewResultRow]:
        """Gets the returned rows"""
        return self.__rows

    def __init__(self, body: dict):
        self.__offset = _get_typed_nonnull(body, "offset", int, 0)
        self.__total_rows = _get_typed_nonnull(body, "total_rows", int, 0)
        self.__rows = [
            ViewResultRow(cast(dict, r))
            for r in _get_typed_nonnull(body, "rows", list, [])
        ]


class ViewDefinition(JSONSerializable):
    """The map and optional reduce source of one view"""

    def __init__(self, map_source: str, reduce_source: Optional[str] = None):
        self.map_source = map_source
        self.reduce_source = reduce_source

    def to_json(self) -> Any:
        body = {"map": self.map_source}
        if self.reduce_source:
            body["reduce"] = self.reduce_source

        return body


class DesignDocument(JSONSerializable):
    """
    A design document holding view definitions.  Members other than `views` that
    an existing design document may have are preserved when it is written back.
    """

    @property
    def id(self) -> str:
        """Gets the full key of the design document (`_design/<name>`)"""
        return f"_design/{self.__name}"

    @property
    def rev(self) -> Optional[str]:
        """Gets the revision token, or `None` if the design document is new"""
        return self.__rev

    @property
    def views(self) -> dict[str, Any]:
        """Gets the view definitions by name"""
        return self.__views

    def __init__(self, name: str, existing: Optional[dict] = None):
        self.__name = name
        self.__other: dict = {}
        self.__rev: Optional[str] = None
        self.__views: dict[str, Any] = {}
        if existing is not None:
            self.__other = {
                k: v for k, v in existing.items() if k not in ("_id", "_rev", "views")
            }
            self.__rev = _get_typed(existing, "_rev", str)
            self.__views = dict(_get_typed_nonnull(existing, "views", dict, {}))

    def add_view(self, name: str, view: ViewDefinition) -> None:
        self.__views[name] = view

    def to_json(self) -> Any:
        body = dict(self.__other)
        body["_id"] = self.id
        if self.__rev is not None:
            body["_rev"] = self.__rev

        body["views"] = {
            k: v.to_json() if isinstance(v, ViewDefinition) else v
            for k, v in self.__views.items()
        }
        return body


class ActiveTask:
    """
    A loosely typed entry of the store's active task list.  Only the fields needed
    for replication liveness are exposed as properties, the rest is in `raw`.
    """

    @property
    def type(self) -> str:
        """Gets the task type (e.g. replication, indexer)"""
        return self.__type

    @property
    def replication_id(self) -> Optional[str]:
        """Gets the replication identifier, for replication tasks"""
        return self.__replication_id

    @property
    def raw(self) -> dict:
        """Gets the task entry exactly as the store returned it"""
        return self.__raw

    def is_replication_of(self, session_id: str) -> bool:
        """
        Returns `True` if this is a replication task belonging to the given session.
        The store suffixes the identifier with mode flags (e.g. `+continuous`),
        so a prefix match is used.

        :param session_id: The session identifier returned when the replication started
        """
        return (
            self.__type == "replication"
            and bool(session_id)
            and self.__replication_id is not None
            and self.__replication_id.startswith(session_id)
        )

    def __init__(self, body: dict):
        self.__raw = body
        task_type = body.get("type")
        self.__type = task_type if isinstance(task_type, str) else ""
        repl_id = body.get("replication_id")
        self.__replication_id = repl_id if isinstance(repl_id, str) else None
