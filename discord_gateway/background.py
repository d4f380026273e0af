"""Worker pool for interaction handlers and other work kept off the request thread."""

from __future__ import annotations

from contextvars import Context, copy_context
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from structlog.contextvars import bind_contextvars

DEFAULT_WORKERS = 8


def _context_for(trace_id: str | None) -> Context:
    context = copy_context()
    if trace_id is not None:
        context.run(bind_contextvars, trace_id=trace_id)
    return context


class WorkerPool:
    """Thread pool whose tasks inherit the submitter's structlog context."""

    def __init__(self, max_workers: int = DEFAULT_WORKERS, *, name: str = "gateway-worker") -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)

    def submit(
        self,
        func: Callable[..., Any],
        /,
        *args: Any,
        trace_id: str | None = None,
        **kwargs: Any,
    ) -> Future:
        context = _context_for(trace_id)
        return self._executor.submit(context.run, func, *args, **kwargs)

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


_pool = WorkerPool()


def run_async(
    func: Callable[..., Any],
    /,
    *args: Any,
    trace_id: str | None = None,
    **kwargs: Any,
) -> Future:
    """Submit *func* to the shared pool and return a Future.

    Work logs under the caller's trace id unless *trace_id* overrides it.
    """

    return _pool.submit(func, *args, trace_id=trace_id, **kwargs)
