from __future__ import annotations

import logging
from typing import Optional

import structlog

_configured_level: Optional[str] = None


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Initialize Python logging and structlog with consistent formatting.

    Streamlit re-imports and reruns the app script many times per session, so repeated
    calls with the same level are a no-op. Context bound with `bind_identity` is merged
    into every event.
    """
    global _configured_level
    if _configured_level == level.upper():
        return
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_level)
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
    _configured_level = level.upper()


def bind_identity(uid: Optional[str]) -> None:
    """Attach the signed-in user id to subsequent structlog events on this thread."""
    if uid:
        structlog.contextvars.bind_contextvars(uid=uid)
    else:
        structlog.contextvars.unbind_contextvars("uid")


def get_logger(name: Optional[str] = None):
    """Return a structlog logger that inherits the global configuration."""
    return structlog.get_logger(name)
