from __future__ import annotations

from typing import Optional


class SimulationError(Exception):
    """Base class for failures raised by the orchestration core."""

    def __init__(self, message: str, *, job_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.job_id = job_id


class TransportError(SimulationError):
    """Network/HTTP failure reaching the store or the external service."""

    def __init__(self, message: str, *, job_id: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, job_id=job_id)
        self.status_code = status_code


class NotFound(SimulationError):
    pass


class TriggerConflict(SimulationError):
    """A duplicate trigger was attempted while one is still in flight."""

    def __init__(self, key: str, *, job_id: Optional[str] = None) -> None:
        super().__init__(f"trigger already in flight: {key}", job_id=job_id)
        self.key = key


class ValidationError(SimulationError):
    pass


class StalledError(SimulationError):
    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(
            f"persona generation for job {job_id} did not complete after {attempts} polls",
            job_id=job_id,
        )
        self.attempts = attempts


class MalformedResponseError(SimulationError):
    pass


__all__ = [
    "MalformedResponseError",
    "NotFound",
    "SimulationError",
    "StalledError",
    "TransportError",
    "TriggerConflict",
    "ValidationError",
]
