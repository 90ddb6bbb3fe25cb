import threading
import uuid
from dataclasses import dataclass
from typing import Dict, Optional


class InvalidJoin(ValueError):
    pass


@dataclass(frozen=True)
class Session:
    participant_id: str
    display_name: str


def resolve_identity(display_name, participant_id=None, max_name_length: int = 30):
    """Validate a join request and return ``(participant_id, display_name)``.

    A participant id supplied by the client is trusted and reused so scores
    survive reconnects; otherwise a fresh one is issued.
    """
    if not isinstance(display_name, str) or not display_name.strip():
        raise InvalidJoin('Display name is required.')
    name = display_name.strip()[:max_name_length]
    if isinstance(participant_id, str) and participant_id.strip():
        pid = participant_id.strip()[:64]
    else:
        pid = uuid.uuid4().hex
    return pid, name


class SessionRegistry:
    """Live connections and the participant each one has joined as.

    Mutated by connect/join/disconnect handlers that may run concurrently,
    read by the broadcast fan-out for the player count.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, Optional[Session]] = {}

    def connect(self, sid: str) -> int:
        with self._lock:
            self._connections.setdefault(sid, None)
            return len(self._connections)

    def join(self, sid: str, participant_id: str, display_name: str) -> Session:
        session = Session(participant_id=participant_id, display_name=display_name)
        with self._lock:
            self._connections[sid] = session
        return session

    def get(self, sid: str) -> Optional[Session]:
        with self._lock:
            return self._connections.get(sid)

    def disconnect(self, sid: str) -> Optional[Session]:
        with self._lock:
            return self._connections.pop(sid, None)

    def count(self) -> int:
        with self._lock:
            return len(self._connections)
