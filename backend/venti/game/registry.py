from __future__ import annotations

import logging
from threading import RLock

from .errors import DuplicateCode, RoomNotFound
from .session import Broadcaster, GameSession
from .settings import GameSettings
from .timers import TimerService


log = logging.getLogger(__name__)


class SessionRegistry:
    """Active sessions keyed by room code.

    The registry lock only guards the mapping itself. It is never held while a
    session lock is being acquired, so a session may call back into
    ``destroy``/``publish_lobby`` from inside its own lock.
    """

    def __init__(self, settings: GameSettings, broadcaster: Broadcaster, timers: TimerService) -> None:
        self.settings = settings
        self.broadcaster = broadcaster
        self.timers = timers
        self._lock = RLock()
        self._sessions: dict[str, GameSession] = {}

    def create(self, code: str, creator_id: str, creator_name: str) -> GameSession:
        with self._lock:
            if code in self._sessions:
                raise DuplicateCode(f"La stanza {code} esiste già")

            session = GameSession(
                code,
                creator_id,
                creator_name,
                registry=self,
                broadcaster=self.broadcaster,
                timers=self.timers,
                settings=self.settings,
            )
            self._sessions[code] = session

        log.info("room created code=%s thinker=%s", code, creator_id)
        self.publish_lobby()
        return session

    def lookup(self, code: str) -> GameSession | None:
        with self._lock:
            return self._sessions.get(code)

    def get(self, code: str) -> GameSession:
        session = self.lookup(code)
        if session is None:
            raise RoomNotFound(f"Stanza {code} non trovata")
        return session

    def destroy(self, code: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(code, None)
        if removed is None:
            return False
        log.info("room destroyed code=%s", code)
        self.publish_lobby()
        return True

    def sessions(self) -> list[GameSession]:
        with self._lock:
            return list(self._sessions.values())

    def sessions_with(self, conn_id: str) -> list[GameSession]:
        return [s for s in self.sessions() if conn_id in s.state.players]

    def list_summaries(self) -> list[dict]:
        return [s.summary() for s in self.sessions()]

    def publish_lobby(self) -> None:
        self.broadcaster.emit("rooms:update", {"rooms": self.list_summaries()}, to=None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, code: str) -> bool:
        with self._lock:
            return code in self._sessions
