from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Optional

from .accessors import StageDataAccessors
from .models import PollerState, SimulationTimings
from .navigation import Navigator
from .session import SimulationSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 256


class SimulationSessionManager:
    """Keeps one live session per job id for the HTTP surface.

    Sessions whose poller stalled are evicted before a new one is created, and
    the map is capped at ``max_sessions`` by dropping the least recently used.
    """

    def __init__(
        self,
        accessors: StageDataAccessors,
        timings: Optional[SimulationTimings] = None,
        *,
        session_factory: Optional[Callable[[], SimulationSession]] = None,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
    ) -> None:
        self.accessors = accessors
        self.timings = timings or SimulationTimings()
        self._factory = session_factory or self._default_factory
        self.sessions: Dict[str, SimulationSession] = {}
        self.max_sessions = max(1, max_sessions)
        self._lock = asyncio.Lock()

    def _default_factory(self) -> SimulationSession:
        return SimulationSession(self.accessors, navigator=Navigator(), timings=self.timings)

    async def get_or_create(self, job_id: str) -> SimulationSession:
        async with self._lock:
            session = self.sessions.pop(job_id, None)
            if session is not None:
                self.sessions[job_id] = session
                return session
            self._evict_locked()
            session = self._factory()
            self.sessions[job_id] = session
            logger.debug("evt=session_created job_id=%s active_sessions=%d", job_id, len(self.sessions))
            try:
                await session.activate(job_id)
            except Exception:
                self.sessions.pop(job_id, None)
                session.close()
                raise
            return session

    def _evict_locked(self) -> None:
        for job_id, session in list(self.sessions.items()):
            if session.poller.state is PollerState.stalled:
                self._drop_locked(job_id, "stalled")
        while len(self.sessions) >= self.max_sessions:
            self._drop_locked(next(iter(self.sessions)), "capacity")

    def _drop_locked(self, job_id: str, reason: str) -> None:
        session = self.sessions.pop(job_id)
        session.close()
        logger.debug("evt=session_evicted job_id=%s reason=%s active_sessions=%d", job_id, reason, len(self.sessions))

    def get(self, job_id: str) -> SimulationSession:
        session = self.sessions.get(job_id)
        if session is None:
            raise KeyError(job_id)
        return session

    async def close(self, job_id: str) -> bool:
        async with self._lock:
            session = self.sessions.pop(job_id, None)
        if session is None:
            return False
        session.close()
        return True

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self.sessions.values())
            self.sessions.clear()
        for session in sessions:
            session.close()


__all__ = ["SimulationSessionManager"]
