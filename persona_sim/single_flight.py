from __future__ import annotations

import logging
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

from .errors import TriggerConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """At most one outstanding call per key.

    A second call for a key whose first call has not settled raises
    ``TriggerConflict`` immediately; it is never queued or joined. The key is
    released once the call settles, success or failure.
    """

    def __init__(self) -> None:
        self._in_flight: Dict[Hashable, bool] = {}

    def in_flight(self, key: Hashable) -> bool:
        return self._in_flight.get(key, False)

    async def run(self, key: Hashable, func: Callable[[], Awaitable[T]]) -> T:
        # Check-and-set happens before the first await, so it is atomic on the loop.
        if self._in_flight.get(key):
            logger.debug("evt=trigger_suppressed key=%s", key)
            job_id = key[0] if isinstance(key, tuple) and key else None
            raise TriggerConflict(str(key), job_id=job_id)
        self._in_flight[key] = True
        try:
            return await func()
        finally:
            self._in_flight.pop(key, None)


__all__ = ["SingleFlight"]
