"""Task context via contextvars: the ticket a task is working on."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_ticket_id: ContextVar[str | None] = ContextVar("ticket_id", default=None)


def set_ticket_id(value: str | None) -> None:
    """Set the ticket id for the current task context."""
    _ticket_id.set(value)


def get_ticket_id() -> str | None:
    """Get the ticket id for the current task context."""
    return _ticket_id.get()


@contextmanager
def ticket_context(value: str) -> Iterator[None]:
    """Bind *value* as the current ticket id for the duration of the block."""
    token = _ticket_id.set(value)
    try:
        yield
    finally:
        _ticket_id.reset(token)
