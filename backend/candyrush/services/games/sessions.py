import logging
import random
import string
import threading
import time
from typing import Callable, Dict, Optional

from .orchestrator import RoundOrchestrator, RoundState


logger = logging.getLogger(__name__)

FINISHED_STATES = (RoundState.GAME_OVER, RoundState.LOAD_ERROR)


def generate_session_code(taken, length: int = 4) -> str:
    """Generate a unique, short session code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if code not in taken:
            return code


class SessionRegistry:
    """In-memory play sessions for one application instance.

    Sessions nobody has looked up for ``idle_ttl`` seconds are evicted the
    next time a session is created; finished ones (game over or load error)
    go after the shorter ``finished_ttl``.
    """

    def __init__(self, idle_ttl: float = 1800, finished_ttl: float = 300,
                 clock: Callable[[], float] = time.monotonic):
        self.idle_ttl = idle_ttl
        self.finished_ttl = finished_ttl
        self._clock = clock
        self._sessions: Dict[str, RoundOrchestrator] = {}
        self._touched: Dict[str, float] = {}
        self._lock = threading.Lock()

    def create(self, nickname: str, score_store=None) -> RoundOrchestrator:
        with self._lock:
            self._sweep()
            code = generate_session_code(self._sessions)
            session = RoundOrchestrator(nickname=nickname, score_store=score_store, code=code)
            self._sessions[code] = session
            self._touched[code] = self._clock()
            return session

    def get(self, code: str) -> Optional[RoundOrchestrator]:
        key = (code or '').upper()
        with self._lock:
            session = self._sessions.get(key)
            if session is not None:
                self._touched[key] = self._clock()
            return session

    def discard(self, code: str) -> Optional[RoundOrchestrator]:
        key = (code or '').upper()
        with self._lock:
            self._touched.pop(key, None)
            return self._sessions.pop(key, None)

    def _sweep(self) -> None:
        now = self._clock()
        stale = []
        for code, session in self._sessions.items():
            ttl = self.finished_ttl if session.state in FINISHED_STATES else self.idle_ttl
            if now - self._touched.get(code, now) > ttl:
                stale.append(code)
        for code in stale:
            self._sessions.pop(code, None)
            self._touched.pop(code, None)
        if stale:
            logger.info(f"[session-evict] evicted={len(stale)} active={len(self)}")

    def __len__(self) -> int:
        return len(self._sessions)


EXTENSION_KEY = 'candyrush.sessions'


def get_registry(app) -> SessionRegistry:
    return app.extensions[EXTENSION_KEY]
