from __future__ import annotations

from typing import Any, Final, Optional


class StoreErrorKind:
    """The well known short error kinds reported in a store error envelope"""

    BAD_REQUEST: Final[str] = "bad_request"
    """The request body or parameters were malformed"""

    UNAUTHORIZED: Final[str] = "unauthorized"
    """Authentication failed or is missing"""

    FORBIDDEN: Final[str] = "forbidden"
    """The authenticated user lacks the required permission"""

    NOT_FOUND: Final[str] = "not_found"
    """The database, document or view does not exist"""

    CONFLICT: Final[str] = "conflict"
    """The revision precondition of a write failed (lost update)"""

    FILE_EXISTS: Final[str] = "file_exists"
    """The database to create already exists"""

    @classmethod
    def equal(cls, val: str, expected: str) -> bool:
        return val.lower() == expected


class CouchErrorBody:
    """A class representing the `{error, reason}` envelope returned by the store"""

    __error_key: Final[str] = "error"
    __reason_key: Final[str] = "reason"

    @property
    def error(self) -> str:
        """Gets the short error kind (e.g. bad_request)"""
        return self.__error

    @property
    def reason(self) -> str:
        """Gets the longer, more specific description of the error"""
        return self.__reason

    @classmethod
    def create(c, body: Any) -> Optional[CouchErrorBody]:
        """
        Creates a :class:`CouchErrorBody` if the provided body contains the appropriate
        content, or returns `None` otherwise

        :param body: A decoded response body potentially containing error keys
        """
        if isinstance(body, dict) and isinstance(body.get(c.__error_key), str):
            reason = body.get(c.__reason_key)
            return CouchErrorBody(
                body[c.__error_key], reason if isinstance(reason, str) else ""
            )

        return None

    def __init__(self, error: str, reason: str):
        self.__error = error
        self.__reason = reason

    def __str__(self) -> str:
        return f"{self.__error} ({self.__reason})"
