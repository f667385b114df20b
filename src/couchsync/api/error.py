from typing import Optional

from couchsync.api.document import DocBulk
from couchsync.api.error_types import CouchErrorBody


class CouchError(Exception):
    """Base class of every error raised by couchsync"""

    def __init__(self, *args):
        super().__init__(*args)


class CouchTransportError(CouchError):
    """The store could not be reached (connection refused, DNS failure, broken connection...)"""

    def __init__(self, *args):
        super().__init__(*args)


class CouchBadResponseError(CouchError):
    """A bad HTTP code, or an error envelope, was returned from the store"""

    @property
    def code(self) -> int:
        """Gets the HTTP status code that the store returned"""
        return self.__code

    @property
    def error_type(self) -> str:
        """Gets the short error kind from the envelope (e.g. bad_request), or an empty string"""
        return self.__body.error if self.__body is not None else ""

    @property
    def reason(self) -> str:
        """Gets the detailed description from the envelope, or an empty string"""
        return self.__body.reason if self.__body is not None else ""

    def __init__(self, code: int, body: Optional[CouchErrorBody], *args):
        self.__code = code
        self.__body = body
        super().__init__(*args)


class CouchBadRequestError(CouchBadResponseError):
    """The request body or parameters were rejected as malformed (400)"""


class CouchPermissionDeniedError(CouchBadResponseError):
    """Read, write or admin authorization failed (401 / 403)"""


class CouchNotFoundError(CouchBadResponseError):
    """The key, database or index does not exist (404)"""


class CouchTargetUnknownError(CouchNotFoundError):
    """A replication could not start because its source or target database is unknown"""


class CouchConflictError(CouchBadResponseError):
    """The revision precondition of a write failed because the document changed (409)"""


class CouchBulkPartialFailureError(CouchError):
    """
    At least one document of a multi-document write was rejected.  The documents
    that were accepted already carry their new revision.
    """

    @property
    def failed(self) -> DocBulk:
        """Gets the documents that were not written"""
        return self.__failed

    @property
    def errors(self) -> list[CouchErrorBody]:
        """Gets the error reported for each failed document, in the same order as `failed`"""
        return self.__errors

    def __init__(self, failed: DocBulk, errors: list[CouchErrorBody], *args):
        self.__failed = failed
        self.__errors = errors
        super().__init__(*args)


class CouchLostUpdateError(CouchBulkPartialFailureError):
    """
    A conflict resolution was rejected because another party changed the
    conflicting revisions first.  Ask for the conflict again and retry.
    """

    @property
    def key(self) -> str:
        """Gets the key of the document whose conflict could not be resolved"""
        return self.__key

    def __init__(
        self, key: str, failed: DocBulk, errors: list[CouchErrorBody], *args
    ):
        self.__key = key
        super().__init__(failed, errors, *args)


class CouchInconsistentSyncError(CouchError):
    """Exactly one leg of a sync is active, which never happens under correct operation"""

    @property
    def a_to_b_active(self) -> bool:
        """Gets whether the forward replication was found active"""
        return self.__a_to_b_active

    @property
    def b_to_a_active(self) -> bool:
        """Gets whether the backward replication was found active"""
        return self.__b_to_a_active

    def __init__(self, a_to_b_active: bool, b_to_a_active: bool, *args):
        self.__a_to_b_active = a_to_b_active
        self.__b_to_a_active = b_to_a_active
        super().__init__(*args)


class CouchSyncCancelError(CouchError):
    """Cancelling at least one leg of a sync failed"""

    @property
    def a_to_b_error(self) -> Optional[CouchError]:
        """Gets the error from cancelling the forward replication, if any"""
        return self.__a_to_b_error

    @property
    def b_to_a_error(self) -> Optional[CouchError]:
        """Gets the error from cancelling the backward replication, if any"""
        return self.__b_to_a_error

    def __init__(
        self,
        a_to_b_error: Optional[CouchError],
        b_to_a_error: Optional[CouchError],
    ):
        self.__a_to_b_error = a_to_b_error
        self.__b_to_a_error = b_to_a_error
        super().__init__(
            f"Error cancelling replication, a->b: {a_to_b_error}, b->a: {b_to_a_error}"
        )


class CouchTimeoutError(CouchError):
    """A timeout occurred while waiting for an event"""

    def __init__(self, *args):
        super().__init__(*args)


def error_type(err: BaseException) -> str:
    """
    Returns the short store error kind (e.g. bad_request) if the error originated
    from the store, or an empty string otherwise

    :param err: The error to inspect
    """
    if isinstance(err, CouchBadResponseError):
        return err.error_type

    if isinstance(err, CouchBulkPartialFailureError) and len(err.errors) > 0:
        return err.errors[0].error

    return ""
