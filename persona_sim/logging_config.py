from __future__ import annotations

import logging
import os
from logging.config import dictConfig


_CONFIGURED = False

PACKAGE = "persona_sim"
EVENT_PREFIX = "evt="
DATEFMT = "%Y-%m-%d %H:%M:%S"


class EventFormatter(logging.Formatter):
    """Render ``evt=`` records as one key/value line, everything else as prose.

    Event lines come out as ``ts level=DEBUG logger=persona_sim.poller evt=...``
    so the poll, trigger and stage transitions can be grepped by key.
    """

    def __init__(self, datefmt: str = DATEFMT) -> None:
        super().__init__(fmt="%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s", datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if not message.startswith(EVENT_PREFIX):
            return super().format(record)
        line = f"{self.formatTime(record, self.datefmt)} level={record.levelname} logger={record.name} {message}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class _PackageDebugFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno == logging.DEBUG:
            return record.name == PACKAGE or record.name.startswith(PACKAGE + ".")
        return True


def configure_logging() -> None:
    """Configure console logging for the orchestration service.

    PERSONA_SIM_LOG_LEVEL picks the root level (DEBUG by default). DEBUG lines
    are only emitted for this package; httpx and httpcore stay at WARNING.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = os.getenv("PERSONA_SIM_LOG_LEVEL", "DEBUG").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "events": {"()": EventFormatter},
                "uvicorn": {"format": "%(asctime)s [%(levelname)s] %(message)s", "datefmt": DATEFMT},
            },
            "filters": {"package_debug": {"()": _PackageDebugFilter}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "events",
                    "filters": ["package_debug"],
                },
                "uvicorn": {"class": "logging.StreamHandler", "formatter": "uvicorn"},
            },
            "loggers": {
                "": {"handlers": ["console"], "level": log_level},
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
                "uvicorn.error": {"level": "INFO"},
                "uvicorn.access": {"handlers": ["uvicorn"], "level": "INFO", "propagate": False},
            },
        }
    )

    logging.getLogger(__name__).debug("evt=logging_configured level=%s", log_level)
    _CONFIGURED = True
