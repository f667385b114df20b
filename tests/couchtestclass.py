from abc import ABC

from couchsync.globals import CouchSyncGlobal
from couchsync.logging import couch_info, couch_warning


class CouchTestClass(ABC):
    def setup_method(self, method) -> None:
        CouchSyncGlobal.label = method.__name__
        couch_info(f"Starting test: {method.__name__}")
        self.__step: int = 1

    def teardown_method(self, method) -> None:
        if self.__step == 1:
            couch_warning(
                f"No test steps marked in {method.__name__}, did you forget to use self.mark_test_step()?"
            )

    def mark_test_step(self, description: str) -> None:
        """
        Logs that a new test step is about to be performed, so that a failure can be
        placed in the log output
        """
        couch_info(f"Moving to step {self.__step}:")
        self.__step += 1
        for line in description.splitlines():
            stripped_line = line.strip()
            if len(stripped_line) == 0:
                continue

            couch_info(f"\t{stripped_line}")
