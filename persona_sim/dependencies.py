from __future__ import annotations

from functools import lru_cache

from dotenv import load_dotenv
from fastapi import HTTPException

from . import settings as app_settings
from .accessors import StageDataAccessors
from .errors import MalformedResponseError, NotFound, SimulationError, StalledError, TransportError, ValidationError
from .services.service_client import ServiceClient
from .services.store import StoreClient
from .session_manager import SimulationSessionManager


load_dotenv()


@lru_cache
def get_settings() -> app_settings.Settings:
    return app_settings.load_settings()


@lru_cache
def get_store_client() -> StoreClient:
    return StoreClient.from_settings(get_settings())


@lru_cache
def get_service_client() -> ServiceClient:
    return ServiceClient.from_settings(get_settings())


@lru_cache
def get_accessors() -> StageDataAccessors:
    return StageDataAccessors(get_store_client(), get_service_client())


@lru_cache
def get_session_manager() -> SimulationSessionManager:
    return SimulationSessionManager(get_accessors(), get_settings().timings)


def get_app_settings():
    return app_settings


def http_error(exc: SimulationError) -> HTTPException:
    """Map a core error onto the HTTP status returned to the presentation layer."""
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StalledError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, (TransportError, MalformedResponseError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


__all__ = [
    "get_accessors",
    "get_app_settings",
    "get_service_client",
    "get_session_manager",
    "get_settings",
    "get_store_client",
    "http_error",
]
