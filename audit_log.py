"""Registro de eventos de autenticación (login correcto/fallido, logout).

Solo se conservan los últimos `max_events` eventos; los anteriores se descartan
al llegar nuevos (siguen en el log de la aplicación).
"""

from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional
from logger import get_logger

log = get_logger(__name__)


@dataclass
class LoginEvent:
    timestamp: str
    type: str  # success | failure | logout
    username: str
    ip: str
    user_agent: str = 'unknown'
    uid: Optional[int] = None
    reason: Optional[str] = None


class AuditLog:
    """Ventana en memoria de eventos, espejada en el log de la aplicación."""
    def __init__(self, max_events: int = 1000):
        self.events: Deque[LoginEvent] = deque(maxlen=max_events)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def login_success(self, uid: int, username: str, ip: str, user_agent: str):
        self.events.append(LoginEvent(self._now(), 'success', username, ip, user_agent, uid=uid))
        log.info("Login successful: %s (UID: %s) from %s", username, uid, ip)

    def login_failure(self, username: str, ip: str, reason: str, user_agent: str):
        self.events.append(LoginEvent(self._now(), 'failure', username, ip, user_agent, reason=reason))
        log.warning("Login failed: %s from %s - Reason: %s", username, ip, reason)

    def logout(self, uid: int, username: str, ip: str):
        self.events.append(LoginEvent(self._now(), 'logout', username, ip, uid=uid))
        log.info("User logged out: %s (UID: %s) from %s", username, uid, ip)

    # recent: Últimos `limit` eventos, del más reciente al más antiguo.
    def recent(self, limit: int = 100) -> List[Dict[str, Any]]:
        newest_first = reversed(self.events)
        return [asdict(event) for _, event in zip(range(max(limit, 0)), newest_first)]
