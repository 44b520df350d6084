"""Unit tests for request correlation helpers."""

import time
import uuid

from taskmarket.utils.request_context import (
    capture_start_time,
    ensure_request_id,
    get_request_context,
    get_request_id,
    new_request_context,
    reset_request_context,
    set_request_context,
)


def test_existing_request_id_is_reused():
    assert ensure_request_id("req-123") == "req-123"


def test_missing_request_id_is_generated():
    first = ensure_request_id()
    second = ensure_request_id("")

    assert uuid.UUID(first).version == 4
    assert uuid.UUID(second).version == 4
    assert first != second


def test_start_time_is_wall_clock_seconds():
    before = time.time()
    started = capture_start_time()
    assert before <= started <= time.time()


def test_context_is_visible_until_reset():
    assert get_request_context() is None

    context = new_request_context("req-ctx")
    token = set_request_context(context)
    try:
        assert get_request_context() is context
        assert get_request_id() == "req-ctx"
        assert context.elapsed() >= 0
    finally:
        reset_request_context(token)

    assert get_request_context() is None
    assert get_request_id() is None
