"""Per-request correlation id and timing."""

from __future__ import annotations

import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional

REQUEST_ID_HEADER = "x-request-id"


@dataclass(frozen=True)
class RequestContext:
    """Correlation metadata for one request, created once at entry."""

    request_id: str
    start_time: float

    def elapsed(self) -> float:
        return time.time() - self.start_time


_current_context: ContextVar[Optional[RequestContext]] = ContextVar("request_context", default=None)


def ensure_request_id(existing_id: Optional[str] = None) -> str:
    """Reuse an upstream-assigned id, or generate a UUID4."""
    if existing_id and existing_id.strip():
        return existing_id.strip()
    return str(uuid.uuid4())


def capture_start_time() -> float:
    return time.time()


def new_request_context(existing_id: Optional[str] = None) -> RequestContext:
    return RequestContext(request_id=ensure_request_id(existing_id), start_time=capture_start_time())


def set_request_context(context: Optional[RequestContext]):
    """Bind ``context`` to the current task. Returns a token for ``reset_request_context``."""
    return _current_context.set(context)


def reset_request_context(token) -> None:
    _current_context.reset(token)


def get_request_context() -> Optional[RequestContext]:
    return _current_context.get()


def get_request_id() -> Optional[str]:
    context = _current_context.get()
    return context.request_id if context else None
