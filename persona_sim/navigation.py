from __future__ import annotations

import logging
from typing import List, Optional

logger = logging.getLogger(__name__)

ROUTES = {
    "projects": "/{username}/projects",
    "dashboard": "/{username}/projects/{job_id}/dashboard",
    "simulation": "/{username}/projects/{job_id}/simulation",
}


class Navigator:
    """Records navigation to named routes; the only observable side effect is ``current``."""

    def __init__(self, username: str = "me") -> None:
        self.username = username
        self.history: List[str] = []

    @property
    def current(self) -> Optional[str]:
        return self.history[-1] if self.history else None

    def resolve(self, name: str, job_id: Optional[str] = None) -> str:
        try:
            template = ROUTES[name]
        except KeyError as exc:
            raise ValueError(f"unknown route: {name}") from exc
        return template.format(username=self.username, job_id=job_id or "")

    def push(self, name: str, job_id: Optional[str] = None) -> str:
        path = self.resolve(name, job_id)
        self.history.append(path)
        logger.debug("evt=navigate mode=push path=%s", path)
        return path

    def replace(self, name: str, job_id: Optional[str] = None) -> str:
        path = self.resolve(name, job_id)
        if self.history:
            self.history[-1] = path
        else:
            self.history.append(path)
        logger.debug("evt=navigate mode=replace path=%s", path)
        return path


__all__ = ["ROUTES", "Navigator"]
