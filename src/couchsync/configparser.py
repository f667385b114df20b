from json import dumps, load
from pathlib import Path
from typing import Final, Optional

from .jsonhelper import (
    _assert_string_entry,
    _get_bool_or_default,
    _get_str_or_default,
    _get_typed,
    _get_typed_nonnull,
)

DEFAULT_CONFLICT_DESIGN: Final[str] = "conflicts"
DEFAULT_CONFLICT_VIEW: Final[str] = "all"
DEFAULT_CONFLICT_MAP: Final[str] = (
    "function(doc) { if (doc._conflicts) { emit(null, null); } }"
)
DEFAULT_CONFLICT_REDUCE: Final[str] = "_count"


class ServerInfo:
    """The parsed store server information from the config file"""

    __url_key: Final[str] = "url"
    __username_key: Final[str] = "username"
    __password_key: Final[str] = "password"

    @property
    def url(self) -> str:
        """Gets the root URL of the server (scheme, host and port)"""
        return self.__url

    @property
    def username(self) -> Optional[str]:
        """Gets the user to authenticate as, if any"""
        return self.__username

    @property
    def password(self) -> Optional[str]:
        """Gets the password of the user to authenticate as, if any"""
        return self.__password

    def __init__(self, data: dict):
        self.__url: str = _assert_string_entry(data, self.__url_key).rstrip("/")
        self.__username: Optional[str] = _get_typed(data, self.__username_key, str)
        self.__password: Optional[str] = _get_typed(data, self.__password_key, str)
        if (self.__username is None) != (self.__password is None):
            raise ValueError(
                f"Server {self.__url} must have both username and password, or neither"
            )


class ConflictIndexInfo:
    """
    The names and sources of the aggregate index used to find conflicted documents.
    Every entry is optional and falls back to the conventional `conflicts/all` view.
    """

    __design_key: Final[str] = "design"
    __view_key: Final[str] = "view"
    __map_key: Final[str] = "map"
    __reduce_key: Final[str] = "reduce"

    @property
    def design(self) -> str:
        """Gets the design document name (without the _design/ prefix)"""
        return self.__design

    @property
    def view(self) -> str:
        """Gets the view name inside the design document"""
        return self.__view

    @property
    def map_source(self) -> str:
        """Gets the map function source, which emits once per conflicted document"""
        return self.__map_source

    @property
    def reduce_source(self) -> str:
        """Gets the reduce function source, which counts the emitted rows"""
        return self.__reduce_source

    def __init__(self, data: Optional[dict] = None):
        data = data if data is not None else {}
        self.__design = _get_str_or_default(
            data, self.__design_key, DEFAULT_CONFLICT_DESIGN
        )
        self.__view = _get_str_or_default(data, self.__view_key, DEFAULT_CONFLICT_VIEW)
        self.__map_source = _get_str_or_default(
            data, self.__map_key, DEFAULT_CONFLICT_MAP
        )
        self.__reduce_source = _get_str_or_default(
            data, self.__reduce_key, DEFAULT_CONFLICT_REDUCE
        )

    def __str__(self) -> str:
        return f"_design/{self.__design}/_view/{self.__view}"


class ParsedConfig:
    """The parsed result of the JSON config file provided to couchsync"""

    __servers_key: Final[str] = "servers"
    __conflict_index_key: Final[str] = "conflict-index"
    __create_target_key: Final[str] = "create-target"
    __log_file_key: Final[str] = "log-file"
    __http_log_key: Final[str] = "http-log"

    @property
    def servers(self) -> list[dict]:
        """The list of store servers that can be interacted with"""
        return self.__servers

    @property
    def conflict_index(self) -> ConflictIndexInfo:
        """The conflict index definition shared by every server"""
        return self.__conflict_index

    @property
    def create_target(self) -> bool:
        """Whether replications ask the store to create a missing target database"""
        return self.__create_target

    @property
    def log_file(self) -> Optional[str]:
        """The optional path of a file to write the log into"""
        return self.__log_file

    @property
    def http_log(self) -> Optional[str]:
        """The optional directory to record HTTP traffic into"""
        return self.__http_log

    def __init__(self, json: dict):
        self.__servers = _get_typed_nonnull(json, self.__servers_key, list[dict], [])
        self.__conflict_index = ConflictIndexInfo(
            _get_typed(json, self.__conflict_index_key, dict)
        )
        self.__create_target = _get_bool_or_default(
            json, self.__create_target_key, True
        )
        self.__log_file = _get_typed(json, self.__log_file_key, str)
        self.__http_log = _get_typed(json, self.__http_log_key, str)

    def __str__(self) -> str:
        ret_val = (
            "Servers: "
            + dumps([s.get("url") for s in self.__servers])
            + "\n"
            + "Conflict Index: "
            + str(self.__conflict_index)
            + "\n"
            + "Create Target: "
            + str(self.__create_target)
            + "\n"
            + "Log File: "
            + (self.__log_file if self.__log_file is not None else "")
            + "\n"
            + "HTTP Log: "
            + (self.__http_log if self.__http_log is not None else "")
        )

        return ret_val


def _parse_config(path: str) -> ParsedConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found at {path}")

    with open(p) as fin:
        json = load(fin)

    if not isinstance(json, dict):
        raise ValueError("Configuration is not a JSON dictionary object")

    return ParsedConfig(dict(json))
