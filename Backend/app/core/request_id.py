# Backend/app/core/request_id.py
from __future__ import annotations

import contextvars
import re
import uuid
from typing import Optional

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

# Caller-supplied ids are echoed back in a response header and in logs.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex


def accept_request_id(header_value: Optional[str]) -> str:
    """Reuse an inbound X-Request-Id when it is short and plain, else mint one."""
    candidate = (header_value or "").strip()
    if candidate and _VALID_REQUEST_ID.match(candidate):
        return candidate
    return new_request_id()


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def clear_request_id() -> None:
    _request_id_ctx.set(None)
