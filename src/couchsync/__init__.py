from pathlib import Path
from typing import Optional

from .api.server import CouchServer
from .assertions import _assert_not_null
from .configparser import ParsedConfig, ServerInfo, _parse_config
from .globals import CouchSyncGlobal
from .logging import LogLevel, couch_log_init, couch_setLogLevel


class CouchSync:
    """
    This is the top level class that users will interact with when driving couchsync
    from a config file.  It parses the passed configuration and creates a
    :class:`CouchServer` for every server listed in it.
    """

    @property
    def config(self) -> ParsedConfig:
        """Gets the config as parsed from the provided JSON file path"""
        return self.__config

    @property
    def log_level(self) -> LogLevel:
        """Gets the log level provided"""
        return self.__log_level

    @property
    def servers(self) -> list[CouchServer]:
        """Gets the list of store servers available"""
        return self.__servers

    @staticmethod
    async def create(config_path: str, log_level: LogLevel = LogLevel.WARNING):
        """
        Creates an instance from a config file.  The server sessions need a running
        event loop, so this must be awaited from inside one.

        :param config_path: The path to the JSON config file
        :param log_level: The level of logging to show on the console
        """
        return CouchSync(config_path, log_level)

    def __init__(self, config_path: str, log_level: LogLevel = LogLevel.WARNING):
        _assert_not_null(config_path, "config_path")
        self.__config = _parse_config(config_path)
        self.__log_level = LogLevel(log_level)
        couch_setLogLevel(self.__log_level)
        couch_log_init(self.__config.log_file)
        if self.__config.http_log is not None:
            CouchSyncGlobal.http_log_path = Path(self.__config.http_log)

        self.__servers: list[CouchServer] = []
        for s in self.__config.servers:
            info = ServerInfo(s)
            self.__servers.append(
                CouchServer(
                    info.url,
                    info.username,
                    info.password,
                    self.__config.conflict_index,
                    self.__config.create_target,
                )
            )

    def server(self, url: Optional[str] = None) -> CouchServer:
        """
        Gets a configured server by its root URL, or the first one if no URL is given

        :param url: The root URL of the server as written in the config file
        """
        if len(self.__servers) == 0:
            raise ValueError("No servers configured")

        if url is None:
            return self.__servers[0]

        url = url.rstrip("/")
        for s in self.__servers:
            if s.url == url:
                return s

        raise KeyError(f"Server {url} is not in the configuration")

    async def close(self) -> None:
        """Closes the sessions of all the servers"""
        for s in self.__servers:
            await s.close()

    def __str__(self) -> str:
        return (
            "Configuration:"
            + "\n"
            + str(self.__config)
            + "\n\n"
            + "Log Level: "
            + str(self.__log_level.value)
        )
