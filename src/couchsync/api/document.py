from __future__ import annotations

from abc import abstractmethod
from typing import Any, Iterator, Optional, TypeVar

from couchsync.api.jsonserializable import JSONSerializable

D = TypeVar("D", bound="Doc")


class Identifiable(JSONSerializable):
    """
    The identity contract every document handled by the store must satisfy: a key
    and a revision token.  An empty key means the document was never persisted.
    """

    @abstractmethod
    def id_rev(self) -> tuple[str, str]:
        """Gets the key and revision token of the document"""
        pass

    @abstractmethod
    def set_id_rev(self, id: str, rev: str) -> None:
        """
        Sets the key and revision token of the document

        :param id: The key of the document
        :param rev: The revision token of the document
        """
        pass


class Doc(Identifiable):
    """
    A document with a static shape.  Derive from this class and declare ordinary
    attributes; every public attribute other than `id` and `rev` becomes part of
    the stored body.

    .. code-block:: python

        class Person(Doc):
            def __init__(self, name: str = ""):
                super().__init__()
                self.name = name
    """

    def __init__(self, id: str = "", rev: str = ""):
        self.id: str = id
        """The key of the document, empty until the document is first written"""

        self.rev: str = rev
        """The revision token of the document, replaced on every write"""

    def id_rev(self) -> tuple[str, str]:
        return self.id, self.rev

    def set_id_rev(self, id: str, rev: str) -> None:
        self.id, self.rev = id, rev

    def to_json(self) -> Any:
        body = {
            k: v
            for k, v in vars(self).items()
            if k not in ("id", "rev") and not k.startswith("_")
        }
        if self.id:
            body["_id"] = self.id
        if self.rev:
            body["_rev"] = self.rev

        return body

    @classmethod
    def from_json(cls: type[D], body: dict) -> D:
        """
        Creates an instance of this class from a body returned by the store.  The
        constructor is not called, so every field of the body is assigned as is.

        :param body: The document body, including `_id` and `_rev`
        """
        ret_val = cls.__new__(cls)
        Doc.__init__(ret_val, str(body.get("_id", "")), str(body.get("_rev", "")))
        for k, v in body.items():
            if not k.startswith("_"):
                setattr(ret_val, k, v)

        return ret_val


class DynamicDoc(dict, Identifiable):
    """
    A fully dynamic document (a plain dictionary) that still satisfies the identity
    contract through its `_id` and `_rev` entries
    """

    @property
    def is_deleted(self) -> bool:
        """Gets whether this revision is marked deleted (a closed branch)"""
        return self.get("_deleted") is True

    def id_rev(self) -> tuple[str, str]:
        id = self.get("_id")
        rev = self.get("_rev")
        return (
            id if isinstance(id, str) else "",
            rev if isinstance(rev, str) else "",
        )

    def set_id_rev(self, id: str, rev: str) -> None:
        self["_id"] = id
        self["_rev"] = rev

    def to_json(self) -> Any:
        return dict(self)


class DocBulk(JSONSerializable):
    """An ordered group of documents to be written in a single request"""

    @property
    def docs(self) -> list[Identifiable]:
        """Gets the documents in this bulk, in insertion order"""
        return self.__docs

    def __init__(self, docs: Optional[list[Identifiable]] = None):
        self.__docs: list[Identifiable] = list(docs) if docs is not None else []
        self.all_or_nothing: bool = False
        """Whether the store should reject every document if any one of them fails"""

    def __len__(self) -> int:
        return len(self.__docs)

    def __iter__(self) -> Iterator[Identifiable]:
        return iter(self.__docs)

    def add(self, doc: Identifiable) -> None:
        """
        Adds a document to the end of the bulk

        :param doc: The document to add
        """
        self.__docs.append(doc)

    def find(self, id: str, rev: str) -> Optional[Identifiable]:
        """
        Finds the document with the given identity, or `None` if it is not in the bulk

        :param id: The key to look for
        :param rev: The revision token to look for
        """
        return next((d for d in self.__docs if d.id_rev() == (id, rev)), None)

    def to_json(self) -> Any:
        body: dict[str, Any] = {"docs": [d.to_json() for d in self.__docs]}
        if self.all_or_nothing:
            body["all_or_nothing"] = True

        return body


def from_body(body: dict, doc_type: type = DynamicDoc) -> Identifiable:
    """
    Converts a document body returned by the store into the requested representation

    :param body: The document body, including `_id` and `_rev`
    :param doc_type: Either :class:`DynamicDoc` (or a subclass) or a subclass of :class:`Doc`
    """
    if issubclass(doc_type, DynamicDoc):
        return doc_type(body)

    if issubclass(doc_type, Doc):
        return doc_type.from_json(body)

    raise TypeError(f"{doc_type.__name__} is neither a Doc nor a DynamicDoc type")
