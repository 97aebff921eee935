# Backend/app/core/logging.py
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

import structlog

from app.core.request_id import get_request_id

# Upstream bodies occasionally end up in error strings; keep log lines bounded.
MAX_VALUE_CHARS = 500

_SECRET_KEYS = {
    "authorization", "auth", "cookie", "set-cookie", "token",
    "access_token", "api_key", "apikey", "password", "secret",
}


# -------- Processors ---------------------------------------------------------

def _timestamp(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
    return event_dict


def _level(_: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # "exception" is logged as an error
    name = "error" if method_name == "exception" else (method_name or "info")
    event_dict.setdefault("level", name.lower())
    return event_dict


def _service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return _inner


def _request_id(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    rid = get_request_id()
    if rid:
        event_dict.setdefault("request_id", rid)
    return event_dict


def _clip_long_values(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in event_dict.items():
        if isinstance(value, str) and len(value) > MAX_VALUE_CHARS:
            event_dict[key] = value[:MAX_VALUE_CHARS] + "…"
    return event_dict


def _redact_secrets(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in list(event_dict.keys()):
        if str(key).lower() in _SECRET_KEYS:
            event_dict[key] = "***redacted***"
    return event_dict


# -------- Public API ---------------------------------------------------------

def level_from_name(name: str | int | None, default: int = logging.INFO) -> int:
    """'debug' / 'INFO' / 20 -> stdlib level number; unknown names give `default`."""
    if isinstance(name, int):
        return name
    value = logging.getLevelName(str(name or "").strip().upper())
    return value if isinstance(value, int) else default


_logger: structlog.BoundLogger | None = None


def configure_logging(service_name: str = "api", *, level: int | str = logging.INFO) -> None:
    """
    One global structlog stack: JSON lines on stderr, one object per event.
    Safe to call again (tests, reloads); the last call wins.
    """
    global _logger
    level_no = level_from_name(level)

    logging.basicConfig(level=level_no, format="%(message)s", stream=sys.stderr, force=True)
    # httpx logs every request at INFO; the fetch adapter already logs what matters.
    logging.getLogger("httpx").setLevel(max(level_no, logging.WARNING))

    structlog.configure(
        processors=[
            _timestamp,
            _level,
            _service(service_name),
            _request_id,
            _clip_long_values,
            _redact_secrets,
            structlog.processors.EventRenamer("event"),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_no),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _logger = structlog.get_logger()


def get_logger() -> structlog.BoundLogger:
    if _logger is None:
        configure_logging("api")
    return _logger


logger = get_logger()
