from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .dependencies import get_service_client, get_session_manager, get_store_client
from .logging_config import configure_logging
from .routers import jobs, settings, simulation

logger = logging.getLogger(__name__)

configure_logging()

APP_TITLE = "Persona Simulation Orchestrator"


def ensure_api_keys_interactive() -> None:
    """Prompt for missing store/service keys when running interactively.

    When stdin is not a TTY a warning is logged and the environment is left
    unchanged; the clients then call their backends without credentials.
    """

    required_keys = ("STORE_API_KEY", "SERVICE_API_KEY")
    missing_keys = [key for key in required_keys if not os.environ.get(key)]

    if not missing_keys:
        return

    if not sys.stdin or not sys.stdin.isatty():
        logger.warning(
            "Missing API keys (%s) and cannot prompt because stdin is non-interactive.",
            ", ".join(missing_keys),
        )
        return

    for key in missing_keys:
        value = input(f"Enter value for {key}: ").strip()
        if value:
            os.environ[key] = value


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    manager_factory = app.dependency_overrides.get(get_session_manager, get_session_manager)
    await manager_factory().close_all()
    # Only close clients that were actually created.
    if get_store_client.cache_info().currsize:
        await get_store_client().aclose()
        get_store_client.cache_clear()
    if get_service_client.cache_info().currsize:
        await get_service_client().aclose()
        get_service_client.cache_clear()


def create_app() -> FastAPI:
    """Create the FastAPI application with all routers."""
    configure_logging()

    app = FastAPI(title=APP_TITLE, lifespan=lifespan)

    app.include_router(settings.router)
    app.include_router(jobs.router)
    app.include_router(simulation.router)

    @app.get("/health")
    def health() -> dict:
        return {"ok": True}

    return app


def run() -> None:
    """Run the application using uvicorn."""
    ensure_api_keys_interactive()

    import uvicorn

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "25259"))
    uvicorn.run("persona_sim.main:app", host=host, port=port, reload=False)


app = create_app()


if __name__ == "__main__":
    run()

__all__ = ["app", "create_app", "run"]
