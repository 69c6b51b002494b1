from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import threading
import time
import uuid

from indicator_services.errors import IndicatorServicesError
from indicator_services.grid.changelog import ChangeLog


class SessionLimitReached(IndicatorServicesError):
    code = "too_many_sessions"


@dataclass
class Session:
    id: str
    log: ChangeLog
    created_at: float = field(default_factory=time.time)
    # serializes every call on `log`; a ChangeLog is not safe for concurrent use
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot(self) -> Dict[str, Any]:
        log = self.log
        return {
            "session_id": self.id,
            "frequency": log.frequency.value,
            "codes": list(log.codes),
            "formula": log.composite.text if log.composite else None,
            "target": log.composite.target if log.composite else None,
            "rows": log.to_records(),
            "cursor": log.cursor,
            "history_size": len(log.history),
            "can_undo": log.can_undo,
            "can_redo": log.can_redo,
            "next_entry_index": log.next_entry_index(),
        }


class SessionRegistry:
    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(self, log: ChangeLog, limit: Optional[int] = None) -> Session:
        sid = f"s_{uuid.uuid4().hex[:8]}"
        session = Session(id=sid, log=log)
        with self._lock:
            if limit is not None and len(self._sessions) >= limit:
                raise SessionLimitReached(f"at most {limit} editing sessions may be open")
            self._sessions[sid] = session
        return session

    def get(self, sid: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(sid)

    def delete(self, sid: str) -> bool:
        with self._lock:
            return self._sessions.pop(sid, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


REGISTRY = SessionRegistry()
