from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import dotenv_values, load_dotenv

from .models import SimulationTimings


ROOT_DIR = Path(__file__).resolve().parents[1]
ENV_PATH = ROOT_DIR / ".env"

_KEY_VARS = {"store": "STORE_API_KEY", "service": "SERVICE_API_KEY"}


@dataclass
class Settings:
    store_url: str
    store_api_key: Optional[str]
    service_url: str
    service_api_key: Optional[str]
    http_timeout: float
    timings: SimulationTimings


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_max_attempts(name: str, default: int) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    # 0 (or negative) restores unbounded polling.
    return value if value > 0 else None


def load_settings() -> Settings:
    """Build settings from the process environment (after ``.env`` is loaded).

    ``STORE_URL`` and ``SERVICE_URL`` default to local development servers.
    Timing overrides use the ``PERSONA_SIM_`` prefix; invalid values fall back
    to the defaults rather than failing startup.
    """
    timings = SimulationTimings(
        poll_interval=_env_float("PERSONA_SIM_POLL_INTERVAL", 0.5),
        poll_max_attempts=_env_max_attempts("PERSONA_SIM_POLL_MAX_ATTEMPTS", 600),
        progress_tick=_env_float("PERSONA_SIM_PROGRESS_TICK", 0.3),
        progress_settle_delay=_env_float("PERSONA_SIM_PROGRESS_SETTLE_DELAY", 1.0),
        progress_think_delay=_env_float("PERSONA_SIM_PROGRESS_THINK_DELAY", 3.0),
    )
    return Settings(
        store_url=os.getenv("STORE_URL", "http://localhost:54321").rstrip("/"),
        store_api_key=os.getenv("STORE_API_KEY") or None,
        service_url=os.getenv("SERVICE_URL", "http://localhost:8000").rstrip("/"),
        service_api_key=os.getenv("SERVICE_API_KEY") or None,
        http_timeout=_env_float("PERSONA_SIM_HTTP_TIMEOUT", 30.0),
        timings=timings,
    )


def _mask_key(value: Optional[str]) -> str:
    if not value:
        return ""
    token = value.strip()
    if not token:
        return ""
    if len(token) <= 8:
        if len(token) <= 2:
            return token[0] + "*" * (len(token) - 1) if len(token) > 1 else token
        head = token[:2]
        tail = token[-2:]
        return head + "*" * max(0, len(token) - 4) + tail
    head = token[:4]
    tail = token[-4:]
    middle = "*" * (len(token) - 8)
    return f"{head}{middle}{tail}"


def keys_status() -> dict[str, dict[str, object]]:
    status: dict[str, dict[str, object]] = {}
    for name, var in _KEY_VARS.items():
        value = os.getenv(var)
        status[name] = {"ready": bool(value), "masked": _mask_key(value)}
    return status


def set_keys(store: Optional[str] = None, service: Optional[str] = None, persist: bool = False) -> dict[str, dict[str, object]]:
    if store is not None:
        os.environ["STORE_API_KEY"] = store
    if service is not None:
        os.environ["SERVICE_API_KEY"] = service

    if persist:
        _write_env(store=store, service=service)
        load_dotenv(ENV_PATH, override=True)

    return keys_status()


def _write_env(store: Optional[str], service: Optional[str]) -> None:
    if store is None and service is None and not ENV_PATH.exists():
        return

    env_map = dotenv_values(ENV_PATH) if ENV_PATH.exists() else {}
    if isinstance(env_map, dict):
        env_map = {str(k): v for k, v in env_map.items() if v is not None}
    else:
        env_map = {}

    if store is not None:
        env_map["STORE_API_KEY"] = store
    if service is not None:
        env_map["SERVICE_API_KEY"] = service

    if not env_map:
        return

    lines = [f"{key}={value}" for key, value in env_map.items()]
    ENV_PATH.write_text("\n".join(lines) + "\n", encoding="utf-8")
