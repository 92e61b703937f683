from typing import Dict, List, Optional

from pydantic import TypeAdapter

from .models import ChargingSession

_sessions = TypeAdapter(List[ChargingSession])


def history_key(user_id: str) -> str:
    return f"charging_history_{user_id}"


class HistoryStore:
    """Per-user session history kept as a JSON list under a per-user key."""

    def __init__(self, storage: Optional[Dict[str, str]] = None):
        self.storage: Dict[str, str] = {} if storage is None else storage

    def load(self, user_id: str) -> List[ChargingSession]:
        raw = self.storage.get(history_key(user_id))
        if not raw:
            return []
        return _sessions.validate_json(raw)

    def append(self, session: ChargingSession) -> None:
        history = self.load(session.user_id)
        history.append(session)
        self.storage[history_key(session.user_id)] = _sessions.dump_json(history).decode()

    def last(self, user_id: str) -> Optional[ChargingSession]:
        history = self.load(user_id)
        return history[-1] if history else None

    def find(self, session_id: str) -> Optional[ChargingSession]:
        for key in self.storage:
            for session in _sessions.validate_json(self.storage[key]):
                if session.id == session_id:
                    return session
        return None
