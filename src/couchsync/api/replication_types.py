from enum import Enum
from typing import Any, Final, Optional

from couchsync.api.jsonserializable import JSONSerializable
from couchsync.jsonhelper import _get_typed


class ReplicationState(Enum):
    """An enum representing the lifecycle of a replication session"""

    CREATED = "CREATED"
    """The session object exists but has not been acknowledged by the store"""

    ACTIVE = "ACTIVE"
    """The store accepted the session and may be replicating"""

    CANCELLED = "CANCELLED"
    """The session was cancelled, or a continuous session was found stopped"""

    COMPLETED = "COMPLETED"
    """A one-shot session was found no longer running"""

    def __str__(self) -> str:
        return self.value


class ReplicationRequest(JSONSerializable):
    """
    The body of a `/_replicate` request.  The addresses are absolute URLs because
    the request is executed by the source store, not by this process, so the
    target address must carry any credentials the store needs to reach it.
    """

    def __init__(
        self,
        source: str,
        target: str,
        continuous: bool,
        create_target: bool = True,
        cancel: bool = False,
    ):
        self.source = source
        """The address of the database to replicate from"""

        self.target = target
        """The address of the database to replicate into"""

        self.continuous = continuous
        """Whether the replication keeps running until cancelled"""

        self.create_target = create_target
        """Whether the store creates the target database if it is missing"""

        self.cancel = cancel
        """Whether this request cancels the replication it describes"""

    def to_json(self) -> Any:
        body: dict[str, Any] = {
            "create_target": self.create_target,
            "source": self.source,
            "target": self.target,
            "continuous": self.continuous,
        }
        if self.cancel:
            body["cancel"] = True

        return body


class ReplicationStartResponse:
    """The body the store returns when a replication is started"""

    __session_id_key: Final[str] = "session_id"
    __local_id_key: Final[str] = "_local_id"
    __source_last_seq_key: Final[str] = "source_last_seq"

    @property
    def session_id(self) -> str:
        """
        Gets the identifier of the session.  One-shot replications report it as
        `session_id`, continuous ones only as `_local_id`.
        """
        return self.__session_id

    @property
    def source_last_seq(self) -> Optional[Any]:
        """Gets the last source sequence replicated, for one-shot replications"""
        return self.__source_last_seq

    def __init__(self, body: dict):
        session_id = _get_typed(body, self.__session_id_key, str)
        if not session_id:
            session_id = _get_typed(body, self.__local_id_key, str)

        self.__session_id = session_id or ""
        self.__source_last_seq = body.get(self.__source_last_seq_key)
