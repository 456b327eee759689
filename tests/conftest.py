"""Shared test fixtures and helpers."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from repairdesk.bot.app import build_desk
from repairdesk.core.loyalty import LoyaltyLedger
from repairdesk.core.rate_limiter import RateLimiter
from repairdesk.core.reminders import ReminderScheduler
from repairdesk.core.request_store import RequestStore
from repairdesk.core.state_store import ConversationStateStore
from repairdesk.errors import DeliveryFailure
from repairdesk.schemas.request_schema import EventKind, InboundEvent, NotificationIntent

CLIENT_ID = 100
OTHER_CLIENT_ID = 200
OPERATOR_ID = 900

START = datetime(2025, 3, 15, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    """Collects every intent; users in ``failing`` raise DeliveryFailure."""

    def __init__(self) -> None:
        self.sent: list[NotificationIntent] = []
        self.failing: set[int] = set()

    async def notify(self, intent: NotificationIntent) -> None:
        if intent.target_user_id in self.failing:
            raise DeliveryFailure(f"unreachable: {intent.target_user_id}")
        self.sent.append(intent)

    def to(self, user_id: int) -> list[NotificationIntent]:
        return [i for i in self.sent if i.target_user_id == user_id]


def is_operator(user_id: int) -> bool:
    return user_id == OPERATOR_ID


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def ledger():
    return LoyaltyLedger()


@pytest.fixture
def scheduler(notifier, clock):
    return ReminderScheduler(notifier, clock=clock)


@pytest.fixture
def store(ledger, scheduler, clock):
    return RequestStore(ledger, scheduler, is_operator=is_operator, clock=clock)


@pytest.fixture
def conversations(clock):
    return ConversationStateStore(ttl_sec=3600, is_operator=is_operator, clock=clock)


@pytest.fixture
def rate_limiter(clock):
    return RateLimiter(2.0, clock=clock)


@pytest.fixture
def desk(notifier, clock):
    return build_desk(notifier, clock=clock, operator_ids=(OPERATOR_ID,))


def make_event(
    kind: EventKind,
    payload: str = "",
    user_id: int = CLIENT_ID,
    conversation_id: Optional[int] = None,
) -> InboundEvent:
    """Helper to create an InboundEvent from a private chat."""
    return InboundEvent(
        conversation_id=user_id if conversation_id is None else conversation_id,
        user_id=user_id,
        kind=kind,
        payload=payload,
    )


def command(name: str, user_id: int = CLIENT_ID) -> InboundEvent:
    return make_event(EventKind.COMMAND, name, user_id)


def callback(data: str, user_id: int = CLIENT_ID) -> InboundEvent:
    return make_event(EventKind.CALLBACK_ACTION, data, user_id)


def text(body: str, user_id: int = CLIENT_ID) -> InboundEvent:
    return make_event(EventKind.FREE_TEXT, body, user_id)
