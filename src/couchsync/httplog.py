from itertools import count
from pathlib import Path
from typing import Optional

from couchsync.globals import CouchSyncGlobal

_http_num = count(1)


class _HttpLogWriter:
    __fname_prefix: str
    __folder_name: str

    @property
    def enabled(self) -> bool:
        """Gets whether or not this writer records anything"""
        return self.__record_path is not None

    def __init__(self, num: int, record_path: Optional[Path]):
        label = CouchSyncGlobal.label
        if label.startswith("test_"):
            label = label[5:]

        mod_num = num % 100
        self.__record_path = record_path
        self.__fname_prefix = f"{mod_num:02d}_{label}"
        self.__folder_name = f"{(num // 100) * 100:08d}"

    def __get_path(self, suffix: str) -> Path:
        assert self.__record_path is not None
        folder = self.__record_path / self.__folder_name
        folder.mkdir(parents=True, exist_ok=True)
        return folder / f"{self.__fname_prefix}_{suffix}.txt"

    def write_begin(self, header: str, payload: str) -> None:
        if not self.enabled:
            return

        with open(self.__get_path("begin"), "x") as fout:
            fout.write(header)
            fout.write("\n\n")
            fout.write(payload)

    def write_error(self, msg: str) -> None:
        if not self.enabled:
            return

        with open(self.__get_path("error"), "x") as fout:
            fout.write(msg)

    def write_end(self, header: str, payload: str) -> None:
        if not self.enabled:
            return

        with open(self.__get_path("end"), "x") as fout:
            fout.write(header)
            fout.write("\n\n")
            fout.write(payload)


def get_next_writer() -> _HttpLogWriter:
    return _HttpLogWriter(next(_http_num), CouchSyncGlobal.http_log_path)
