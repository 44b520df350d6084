"""Tests for the structured request logging middleware."""

import asyncio

import pytest
from fastapi import FastAPI, HTTPException, Request
from fastapi.testclient import TestClient

from taskmarket.middleware.request_logging import RequestLoggingMiddleware
from taskmarket.utils.redaction import REDACTED
from taskmarket.utils.request_context import get_request_id


def build_app(started, completed, **options):
    app = FastAPI()

    @app.get("/ok")
    async def ok():
        return {"ok": True, "request_id": get_request_id()}

    @app.post("/echo")
    async def echo(request: Request):
        return await request.json()

    @app.get("/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="Not here")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("boom")

    app.add_middleware(RequestLoggingMiddleware, on_start=started.append, on_end=completed.append, **options)
    return app


@pytest.fixture
def records():
    return [], []


@pytest.fixture
def client(records):
    started, completed = records
    return TestClient(build_app(started, completed), raise_server_exceptions=False)


class TestRequestRecords:
    def test_started_and_completed_records(self, client, records):
        started, completed = records

        response = client.get("/ok?page=2")

        assert response.status_code == 200
        assert len(started) == 1
        assert len(completed) == 1
        assert started[0]["method"] == "GET"
        assert started[0]["path"] == "/ok"
        assert started[0]["query"] == {"page": "2"}
        assert completed[0]["status_code"] == 200
        assert completed[0]["duration"] >= 0

    def test_request_id_is_stable_and_echoed(self, client, records):
        started, completed = records

        response = client.get("/ok")

        request_id = started[0]["request_id"]
        assert completed[0]["request_id"] == request_id
        assert response.headers["x-request-id"] == request_id
        assert response.json()["request_id"] == request_id

    def test_inbound_request_id_is_reused(self, client, records):
        started, completed = records

        response = client.get("/ok", headers={"X-Request-ID": "upstream-42"})

        assert started[0]["request_id"] == "upstream-42"
        assert completed[0]["request_id"] == "upstream-42"
        assert response.headers["x-request-id"] == "upstream-42"

    def test_inbound_request_id_ignored_when_untrusted(self, records):
        started, completed = records
        client = TestClient(build_app(started, completed, trust_request_id_header=False))

        client.get("/ok", headers={"X-Request-ID": "upstream-42"})

        assert started[0]["request_id"] != "upstream-42"

    def test_headers_and_body_are_redacted(self, client, records):
        started, _ = records
        payload = {"email": "a@example.com", "password": "hunter22", "cardNumber": "4242"}

        response = client.post("/echo", json=payload, headers={"Authorization": "Bearer secret"})

        # The handler still sees the original body
        assert response.json() == payload
        assert started[0]["body"] == {"email": "a@example.com", "password": REDACTED, "cardNumber": REDACTED}
        assert started[0]["headers"]["authorization"] == REDACTED

    def test_non_json_body_is_not_logged(self, client, records):
        started, _ = records

        client.post("/echo", content=b"password=hunter22", headers={"content-type": "text/plain"})

        assert started[0]["body"] is None

    def test_oversized_body_is_not_logged_but_reaches_handler(self, records):
        started, _ = records
        client = TestClient(build_app(started, [], max_body_bytes=16))
        payload = {"description": "x" * 64, "password": "hunter22"}

        response = client.post("/echo", json=payload)

        assert response.json() == payload
        assert started[0]["body"] is None

    def test_excluded_paths_produce_no_records(self, records):
        started, completed = records
        client = TestClient(build_app(started, completed, exclude_paths=["/ok"]))

        response = client.get("/ok")

        assert response.status_code == 200
        assert started == []
        assert completed == []


class TestCompletionAlwaysFires:
    def test_handled_http_error(self, client, records):
        _, completed = records

        response = client.get("/missing")

        assert response.status_code == 404
        assert len(completed) == 1
        assert completed[0]["status_code"] == 404

    def test_unhandled_exception(self, client, records):
        _, completed = records

        response = client.get("/boom")

        assert response.status_code == 500
        assert len(completed) == 1
        assert completed[0]["status_code"] == 500

    def test_one_completion_per_request(self, client, records):
        started, completed = records
        paths = ["/ok", "/boom", "/missing", "/ok", "/boom"]

        for path in paths:
            client.get(path)

        assert len(started) == len(paths)
        assert [record["path"] for record in completed] == paths
        assert [record["status_code"] for record in completed] == [200, 500, 404, 200, 500]

    def test_cancellation(self):
        started, completed = [], []
        handler_entered = asyncio.Event()

        async def slow_app(scope, receive, send):
            handler_entered.set()
            await asyncio.sleep(30)

        middleware = RequestLoggingMiddleware(slow_app, on_start=started.append, on_end=completed.append)
        scope = {
            "type": "http",
            "method": "GET",
            "path": "/slow",
            "query_string": b"",
            "headers": [],
            "client": ("127.0.0.1", 5000),
        }

        async def receive():
            return {"type": "http.request", "body": b"", "more_body": False}

        async def send(message):
            pass

        async def scenario():
            task = asyncio.create_task(middleware(scope, receive, send))
            await handler_entered.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert len(started) == 1
        assert len(completed) == 1
        assert completed[0]["path"] == "/slow"
        assert completed[0]["status_code"] is None


def test_sink_failure_does_not_fail_the_request(capsys):
    def broken_sink(record):
        raise RuntimeError("sink down")

    app = FastAPI()

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    app.add_middleware(RequestLoggingMiddleware, on_start=broken_sink, on_end=broken_sink)

    response = TestClient(app).get("/ok")

    assert response.status_code == 200
    assert "request logging failed" in capsys.readouterr().err


def test_default_sinks_write_structured_loguru_records(log_records):
    app = FastAPI()

    @app.get("/ok")
    async def ok():
        return {"ok": True}

    app.add_middleware(RequestLoggingMiddleware)

    TestClient(app).get("/ok", headers={"Authorization": "Bearer secret", "X-Request-ID": "req-log"})

    request_records = [r for r in log_records if r["message"].startswith("REQUEST")]
    assert [r["extra"]["event"] for r in request_records] == ["request_started", "request_completed"]
    assert all(r["extra"]["request_id"] == "req-log" for r in request_records)
    assert request_records[0]["extra"]["headers"]["authorization"] == REDACTED
    assert request_records[1]["extra"]["status_code"] == 200


def test_body_capture_stops_reading_past_the_limit():
    started = []
    chunks = [b'{"a": "', b"x" * 10, b'"}']
    pending = [
        {"type": "http.request", "body": chunk, "more_body": index < len(chunks) - 1}
        for index, chunk in enumerate(chunks)
    ]
    reads_before_app = []
    app_started = False

    async def receive():
        if not app_started:
            reads_before_app.append(1)
        return pending.pop(0)

    async def inner_app(scope, receive, send):
        nonlocal app_started
        app_started = True
        body = b""
        more_body = True
        while more_body:
            message = await receive()
            body += message.get("body", b"")
            more_body = message.get("more_body", False)
        assert body == b"".join(chunks)
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    middleware = RequestLoggingMiddleware(inner_app, on_start=started.append, on_end=lambda record: None, max_body_bytes=12)
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/upload",
        "query_string": b"",
        "headers": [(b"content-type", b"application/json")],
        "client": ("127.0.0.1", 5000),
    }

    async def send(message):
        pass

    asyncio.run(middleware(scope, receive, send))

    # The second chunk crosses the limit; the third is read by the app itself
    assert len(reads_before_app) == 2
    assert pending == []
    assert started[0]["body"] is None
