"""
Correlation ID tracking for command runs.

Every dispatcher command run, heartbeat beat and scan probe executes inside a
correlation context so the log lines it produces (send, retry, ack) can be
grouped. Backed by contextvars, so concurrent asyncio tasks keep separate ids.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tuya_lan_correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new correlation ID (UUID4 hex, no dashes)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear with None) the correlation ID of the current context."""
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    auto_generate: bool = True,
) -> Generator[str | None]:
    """
    Scope a correlation ID to a block, restoring the previous one on exit.

    Args:
        correlation_id: ID to use; generated when None and auto_generate is set
        auto_generate: Generate an ID when none is given

    Yields:
        The correlation ID active inside the block

    Example:
        with correlation_context() as corr_id:
            await dispatcher.send(endpoint, {"1": True})
    """
    previous_id = get_correlation_id()
    if correlation_id is None and auto_generate:
        correlation_id = generate_correlation_id()
    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(previous_id)


def ensure_correlation_id() -> str:
    """Return the current correlation ID, creating one if the context has none."""
    current_id = get_correlation_id()
    if current_id is None:
        current_id = generate_correlation_id()
        set_correlation_id(current_id)
    return current_id
