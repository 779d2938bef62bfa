"""Top-level package exports with lazy loading.

FastAPI and uvicorn are imported only when ``app``, ``create_app`` or ``run``
is requested, so the orchestration core (``persona_sim.session`` and friends)
imports without pulling in the web stack.
"""

from importlib import import_module
from typing import Any

__all__ = ["app", "create_app", "run"]


def __getattr__(name: str) -> Any:
    if name not in __all__:
        raise AttributeError(name)
    module = import_module(".main", __name__)
    return getattr(module, name)
