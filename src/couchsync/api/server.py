import asyncio
from json import dumps
from typing import Any, Optional, cast

from aiohttp import BasicAuth, ClientError, ClientSession, ClientTimeout
from opentelemetry.trace import get_tracer
from yarl import URL

from couchsync.api.database import Database
from couchsync.api.database_types import ActiveTask
from couchsync.api.error import (
    CouchBadRequestError,
    CouchBadResponseError,
    CouchConflictError,
    CouchNotFoundError,
    CouchPermissionDeniedError,
    CouchTransportError,
)
from couchsync.api.error_types import CouchErrorBody
from couchsync.api.jsonserializable import JSONSerializable
from couchsync.assertions import _assert_not_blank
from couchsync.configparser import ConflictIndexInfo
from couchsync.httplog import get_next_writer
from couchsync.jsonhelper import dumps_with_ellipsis
from couchsync.logging import couch_trace, couch_warning
from couchsync.version import VERSION


def _classify_error(
    status: int, body: Optional[CouchErrorBody], msg: str
) -> CouchBadResponseError:
    if status == 400:
        return CouchBadRequestError(status, body, msg)

    if status in (401, 403):
        return CouchPermissionDeniedError(status, body, msg)

    if status == 404:
        return CouchNotFoundError(status, body, msg)

    if status == 409:
        return CouchConflictError(status, body, msg)

    return CouchBadResponseError(status, body, msg)


class CouchServer:
    """
    A class for interacting with a given store instance over its HTTP API.  This is
    the single request executor that every other part of couchsync goes through.

    .. note:: The underlying HTTP session is created immediately, so this class must
        be constructed from inside a running event loop.
    """

    @property
    def url(self) -> str:
        """Gets the root URL of the server (scheme, host and port)"""
        return self.__url

    @property
    def username(self) -> Optional[str]:
        """Gets the user that requests are authenticated as, if any"""
        return self.__username

    @property
    def conflict_index(self) -> ConflictIndexInfo:
        """Gets the definition of the index used to find conflicted documents"""
        return self.__conflict_index

    @property
    def create_target(self) -> bool:
        """Gets whether replications started from this server create missing targets"""
        return self.__create_target

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        conflict_index: Optional[ConflictIndexInfo] = None,
        create_target: bool = True,
        timeout: float = 300.0,
    ):
        _assert_not_blank(url, "url")
        self.__url = url.rstrip("/")
        self.__username = username
        self.__password = password
        self.__conflict_index = (
            conflict_index if conflict_index is not None else ConflictIndexInfo()
        )
        self.__create_target = create_target
        self.__tracer = get_tracer(__name__, VERSION)
        auth = BasicAuth(username, password or "") if username is not None else None
        self.__session = ClientSession(
            self.__url, auth=auth, timeout=ClientTimeout(total=timeout)
        )

    def url_with_credentials(self, path: str = "") -> str:
        """
        Gets an absolute URL on this server with the credentials embedded, suitable
        for handing to another server (e.g. as a replication target)

        :param path: The path below the server root (e.g. a database name)
        """
        url = URL(f"{self.__url}/{path}" if path else self.__url)
        if self.__username is not None:
            url = url.with_user(self.__username).with_password(self.__password or "")

        return str(url)

    def database(self, name: str) -> Database:
        """
        Gets a handle to a database on this server (no request is made)

        :param name: The name of the database
        """
        _assert_not_blank(name, "name")
        return Database(self, name)

    async def _send_request(
        self,
        method: str,
        path: str,
        payload: Optional[JSONSerializable] = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        with self.__tracer.start_as_current_span(
            "send_request", attributes={"http.method": method, "http.path": path}
        ):
            headers = {"Accept": "application/json"}
            if payload is not None:
                headers["Content-Type"] = "application/json"

            data = None if payload is None else payload.serialize()
            writer = get_next_writer()
            writer.write_begin(
                f"Store [{self.__url}] -> {method.upper()} {path} {params or ''}",
                "" if payload is None else payload.serialize(pretty=True),
            )
            couch_trace(f"{method.upper()} {self.__url}{path}")
            try:
                async with self.__session.request(
                    method, path, data=data, headers=headers, params=params
                ) as resp:
                    status = resp.status
                    if resp.content_type.startswith("application/json"):
                        try:
                            ret_val = await resp.json()
                        except ValueError as e:
                            writer.write_error(repr(e))
                            raise CouchBadResponseError(
                                status,
                                None,
                                f"{method.upper()} {path} returned {status} with a malformed JSON body",
                            ) from e

                        text = dumps(ret_val, indent=2)
                    else:
                        text = await resp.text()
                        ret_val = text
            except (ClientError, asyncio.TimeoutError) as e:
                writer.write_error(repr(e))
                couch_warning(f"{method.upper()} {path} on {self.__url} failed: {e!r}")
                raise CouchTransportError(
                    f"{method.upper()} {path} could not reach {self.__url}"
                ) from e

            writer.write_end(
                f"Store [{self.__url}] <- {method.upper()} {path} {status}", text
            )
            # The store may also report an error envelope with a 2xx status, but a
            # document body (it has an _id) is never one
            body = CouchErrorBody.create(ret_val)
            if body is not None and status < 300 and "_id" in ret_val:
                body = None

            if status >= 300 or body is not None:
                couch_trace(
                    f"{method.upper()} {path} returned {status}: {dumps_with_ellipsis(ret_val)}"
                )
                detail = f" ({body})" if body is not None else ""
                raise _classify_error(
                    status, body, f"{method.upper()} {path} returned {status}{detail}"
                )

            return ret_val

    async def head_check(self, path: str) -> bool:
        """
        Probes a path with a header-only request.  Returns `True` for a 2xx status
        and `False` for any other status.

        :param path: The path below the server root to probe
        """
        with self.__tracer.start_as_current_span(
            "head_check", attributes={"http.path": path}
        ):
            try:
                async with self.__session.head(
                    path, headers={"Accept": "application/json"}
                ) as resp:
                    couch_trace(f"HEAD {self.__url}{path} -> {resp.status}")
                    return 200 <= resp.status < 300
            except (ClientError, asyncio.TimeoutError) as e:
                raise CouchTransportError(
                    f"HEAD {path} could not reach {self.__url}"
                ) from e

    async def active_tasks(self) -> list[ActiveTask]:
        """
        Gets the background tasks currently running on the server (replications,
        indexers, compactions...)
        """
        with self.__tracer.start_as_current_span("active_tasks"):
            resp = await self._send_request("get", "/_active_tasks")
            if not isinstance(resp, list):
                raise ValueError(
                    "Inappropriate response from server get /_active_tasks (not a list)"
                )

            return [ActiveTask(cast(dict, t)) for t in resp if isinstance(t, dict)]

    async def all_databases(self) -> list[str]:
        """Gets the names of all databases on the server"""
        with self.__tracer.start_as_current_span("all_databases"):
            resp = await self._send_request("get", "/_all_dbs")
            if not isinstance(resp, list):
                raise ValueError(
                    "Inappropriate response from server get /_all_dbs (not a list)"
                )

            return cast(list[str], resp)

    async def close(self) -> None:
        """Closes the HTTP session of this server"""
        await self.__session.close()
