import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

# Trace ID of the request currently being served; follows the task across awaits
trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)


def generate_trace_id() -> str:
    """Generate a new trace ID."""
    return str(uuid.uuid4())


def set_trace_id(trace_id: str) -> Token:
    """Set the trace ID for the current context and return the reset token."""
    return trace_id_var.set(trace_id)


def current_trace_id() -> Optional[str]:
    """Get the current trace ID, if any."""
    return trace_id_var.get()


def get_trace_id() -> str:
    """Get existing trace ID or create a new one."""
    trace_id = current_trace_id()
    if trace_id is None:
        trace_id = generate_trace_id()
        set_trace_id(trace_id)
    return trace_id


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Run a block under a trace ID and restore the previous one afterwards.

    Used by background callers (scripts, tests) that have no HTTP middleware
    to set the trace ID for them.
    """
    scoped_id = trace_id or generate_trace_id()
    token = trace_id_var.set(scoped_id)
    try:
        yield scoped_id
    finally:
        trace_id_var.reset(token)
