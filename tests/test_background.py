"""Tests for the shared worker pool."""

from __future__ import annotations

import threading

import pytest
import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, get_contextvars
from structlog.testing import capture_logs

from discord_gateway.background import WorkerPool, run_async


@pytest.fixture(autouse=True)
def _clean_context():
    clear_contextvars()
    yield
    clear_contextvars()


def test_run_async_returns_handler_result_off_the_calling_thread():
    caller = threading.get_ident()

    future = run_async(lambda value: (value * 2, threading.get_ident()), 21)
    result, worker = future.result(timeout=1)

    assert result == 42
    assert worker != caller


def test_run_async_surfaces_exceptions_through_the_future():
    def fail():
        raise RuntimeError("handler failed")

    future = run_async(fail)

    with pytest.raises(RuntimeError, match="handler failed"):
        future.result(timeout=1)


def test_interaction_context_is_visible_in_worker():
    bind_contextvars(trace_id="trace-123", interaction_id="i-1")

    future = run_async(get_contextvars)

    assert future.result(timeout=1) == {"trace_id": "trace-123", "interaction_id": "i-1"}


def test_explicit_trace_id_overrides_caller_context_only_in_worker():
    bind_contextvars(trace_id="caller-trace")

    future = run_async(get_contextvars, trace_id="worker-trace")

    assert future.result(timeout=1)["trace_id"] == "worker-trace"
    assert get_contextvars()["trace_id"] == "caller-trace"


def test_worker_logs_carry_the_trace_id():
    with capture_logs(processors=[structlog.contextvars.merge_contextvars]) as logs:
        future = run_async(lambda: structlog.get_logger().info("interaction_handled"), trace_id="trace-789")
        future.result(timeout=1)

    assert logs
    assert logs[0]["event"] == "interaction_handled"
    assert logs[0]["trace_id"] == "trace-789"


def test_dedicated_pool_names_its_threads_and_shuts_down():
    pool = WorkerPool(max_workers=1, name="relay")

    name = pool.submit(lambda: threading.current_thread().name).result(timeout=1)
    pool.shutdown()

    assert name.startswith("relay")
    with pytest.raises(RuntimeError):
        pool.submit(lambda: None)
