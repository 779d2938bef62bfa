"""ASGI entrypoint for running the FastAPI app as ``uvicorn main:app``.

This thin wrapper keeps the short deployment command working while reusing the
canonical application factory defined in ``persona_sim.main``.
"""

from persona_sim.main import app  # noqa: F401  (re-export for ASGI servers)

__all__ = ["app"]
