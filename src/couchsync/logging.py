from enum import Enum
from logging import (
    DEBUG,
    ERROR,
    INFO,
    WARN,
    FileHandler,
    Formatter,
    StreamHandler,
    getLogger,
)
from sys import stdout
from typing import Optional

from .version import VERSION


class LogLevel(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"
    DEBUG = "debug"


# Some initial setup, but the log handlers won't
# be added until the call to couch_log_init
_couch_log = getLogger("couchsync")
_couch_log.setLevel(DEBUG)
console = StreamHandler(stdout)
console.setLevel(WARN)
console.setFormatter(Formatter("%(asctime)s [%(levelname)s]: %(message)s"))


def couch_log_init(log_file: Optional[str] = None) -> None:
    if console not in _couch_log.handlers:
        _couch_log.addHandler(console)

    if log_file is not None:
        file = FileHandler(filename=log_file, encoding="utf-8")
        file.setFormatter(Formatter("%(created)f [%(levelname)s]: %(message)s"))
        _couch_log.addHandler(file)

    _couch_log.info(f"-- couchsync v{VERSION} started --")


def couch_setLogLevel(level: LogLevel):
    if level == LogLevel.ERROR:
        console.setLevel(ERROR)
    elif level == LogLevel.WARNING:
        console.setLevel(WARN)
    elif level == LogLevel.INFO:
        console.setLevel(INFO)
    elif level == LogLevel.VERBOSE or level == LogLevel.DEBUG:
        console.setLevel(DEBUG)


def couch_error(msg: str):
    _couch_log.error(msg, stack_info=True, stacklevel=3)


def couch_warning(msg: str):
    _couch_log.warning(msg)


def couch_info(msg: str):
    _couch_log.info(msg)


def couch_trace(msg: str):
    _couch_log.debug(msg)
