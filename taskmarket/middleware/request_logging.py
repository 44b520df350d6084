"""Structured request logging middleware.

Every HTTP request produces two records: "REQUEST START" before the
application sees it and "REQUEST END" once the exchange is over. Headers and
JSON bodies are redacted copies; the originals are never touched.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from starlette.datastructures import Headers, MutableHeaders, QueryParams
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from taskmarket.config.logger import (
    app_logger,
    log_request_end,
    log_request_error,
    log_request_start,
)
from taskmarket.utils.redaction import redact_body, redact_headers
from taskmarket.utils.request_context import (
    REQUEST_ID_HEADER,
    RequestContext,
    new_request_context,
    reset_request_context,
    set_request_context,
)

RecordSink = Callable[[Dict[str, Any]], None]

DEFAULT_MAX_BODY_BYTES = 64 * 1024


class RequestLoggingMiddleware:
    """Pure ASGI middleware emitting start/completion records per request.

    Completion is emitted from a ``finally`` block around the downstream
    application, so it fires exactly once whether the response finishes,
    the application raises, or the task is cancelled by a client disconnect.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        trust_request_id_header: bool = True,
        exclude_paths: Iterable[str] = (),
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
        on_start: RecordSink = log_request_start,
        on_end: RecordSink = log_request_end,
    ) -> None:
        self.app = app
        self.trust_request_id_header = trust_request_id_header
        self.exclude_paths = frozenset(exclude_paths)
        self.max_body_bytes = max_body_bytes
        self.on_start = on_start
        self.on_end = on_end

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path", "") in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        inbound_id = headers.get(REQUEST_ID_HEADER) if self.trust_request_id_header else None
        context = new_request_context(inbound_id)
        scope.setdefault("state", {})["request_context"] = context

        body, receive = await self._capture_body(headers, receive)
        record = self._build_record(scope, headers, body, context)
        self._emit(self.on_start, record)

        status_code: Optional[int] = None
        error: Optional[BaseException] = None

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                response_headers = MutableHeaders(scope=message)
                if REQUEST_ID_HEADER not in response_headers:
                    response_headers.append(REQUEST_ID_HEADER, context.request_id)
            await send(message)

        token = set_request_context(context)
        try:
            with app_logger.contextualize(request_id=context.request_id):
                await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            error = exc
            raise
        finally:
            reset_request_context(token)
            if status_code is None and error is not None:
                status_code = 500
            completed = dict(record, status_code=status_code, duration=round(context.elapsed(), 4))
            if error is not None:
                self._emit(lambda rec: log_request_error(rec, error), completed)
            self._emit(self.on_end, completed)

    def _build_record(
        self,
        scope: Scope,
        headers: Headers,
        body: Any,
        context: RequestContext,
    ) -> Dict[str, Any]:
        client = scope.get("client")
        return {
            "request_id": context.request_id,
            "method": scope.get("method"),
            "path": scope.get("path"),
            "query": dict(QueryParams(scope.get("query_string", b""))),
            "body": redact_body(body),
            "headers": redact_headers(dict(headers.items())),
            "ip": client[0] if client else None,
        }

    async def _capture_body(self, headers: Headers, receive: Receive) -> Tuple[Any, Receive]:
        """Read a JSON body and hand back a ``receive`` that replays it."""
        if "application/json" not in headers.get("content-type", ""):
            return None, receive

        buffered: list[Message] = []
        chunks: list[bytes] = []
        size = 0
        more_body = True
        while more_body:
            message = await receive()
            buffered.append(message)
            if message["type"] != "http.request":
                break
            chunk = message.get("body", b"")
            size += len(chunk)
            if size > self.max_body_bytes:
                # Too large to log; the rest of the body streams straight to the app
                chunks = []
                break
            chunks.append(chunk)
            more_body = message.get("more_body", False)

        async def replay() -> Message:
            if buffered:
                return buffered.pop(0)
            return await receive()

        raw = b"".join(chunks)
        body = None
        if raw:
            try:
                body = json.loads(raw)
            except ValueError:
                body = None
        return body, replay

    @staticmethod
    def _emit(sink: RecordSink, record: Dict[str, Any]) -> None:
        try:
            sink(record)
        except Exception as exc:
            sys.stderr.write(f"request logging failed: {exc!r}\n")
