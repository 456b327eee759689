"""
Conversation input-capture modes.

A closed set of frozen dataclasses: each mode says what the bot is waiting
for in a conversation, and carries the request id where the awaited input
belongs to a specific request.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class Idle:
    """Nothing is awaited; free text is ignored."""


@dataclass(frozen=True)
class AwaitingBroadcastText:
    """Operator is composing a broadcast to all clients."""


@dataclass(frozen=True)
class AwaitingComment:
    """Operator is typing a comment for a request."""

    request_id: int


@dataclass(frozen=True)
class AwaitingSchedule:
    """Operator is typing the appointment time for a request."""

    request_id: int


@dataclass(frozen=True)
class AwaitingPhone:
    """User is entering their phone number."""


@dataclass(frozen=True)
class AwaitingEmail:
    """User is entering their email, after the phone step."""


ConversationMode = Union[
    Idle,
    AwaitingBroadcastText,
    AwaitingComment,
    AwaitingSchedule,
    AwaitingPhone,
    AwaitingEmail,
]

OPERATOR_MODES = (AwaitingBroadcastText, AwaitingComment, AwaitingSchedule)

IDLE = Idle()


@dataclass
class ConversationState:
    """Stored mode for a conversation and the instant it goes stale."""

    mode: ConversationMode
    expires_at: datetime
