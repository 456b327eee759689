"""Per-event logging context.

While the dispatcher handles an inbound event, every log record from the
desk carries the chat and the acting user, so a single client's requests,
rate-limit hits and operator actions can be followed through the log:

    2025-03-15 10:00:00 [repairdesk.bot.dispatcher] [chat=100 user=100] INFO: ...

Records emitted outside an event (the reminder loop, startup) show ``-``.
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterable, Iterator


@dataclass(frozen=True)
class EventContext:
    """Who the current log records are about."""
    conversation_id: str = "-"
    user_id: str = "-"


_NO_EVENT = EventContext()
_current: ContextVar[EventContext] = ContextVar("repairdesk_event", default=_NO_EVENT)


@contextmanager
def bound_event(conversation_id: int, user_id: int) -> Iterator[EventContext]:
    """Stamp records with one event's chat and user until the block exits."""
    context = EventContext(str(conversation_id), str(user_id))
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


def current_event() -> EventContext:
    return _current.get()


class EventContextFilter(logging.Filter):
    """Adds ``conversation_id`` and ``user_id`` attributes to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _current.get()
        record.conversation_id = context.conversation_id  # type: ignore[attr-defined]
        record.user_id = context.user_id  # type: ignore[attr-defined]
        return True


def install_event_filter(targets: Iterable[logging.Filterer]) -> None:
    """Attach one EventContextFilter to each logger or handler that lacks it."""
    for target in targets:
        if not any(isinstance(f, EventContextFilter) for f in target.filters):
            target.addFilter(EventContextFilter())
