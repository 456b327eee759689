"""Repair request records, inbound events and outbound notification intents."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RequestStatus(str, Enum):
    """Lifecycle status of a repair request."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.IN_PROGRESS})
TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class EventKind(str, Enum):
    COMMAND = "command"
    FREE_TEXT = "free_text"
    CALLBACK_ACTION = "callback_action"


class RepairRequest(BaseModel):
    """A single repair order placed by a client."""

    id: int
    user_id: int
    catalog_item_id: str
    is_bundle: bool = False
    final_price: int = Field(ge=0)
    status: RequestStatus = RequestStatus.PENDING
    comment: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    created_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class NotificationIntent(BaseModel):
    """A message the core wants delivered to a user; fire-and-forget."""

    target_user_id: int
    text: str
    urgency: Urgency = Urgency.NORMAL


class InboundEvent(BaseModel):
    """Platform-neutral inbound event handed to the dispatcher."""

    conversation_id: int
    user_id: int
    kind: EventKind
    payload: str = ""


class RequestStats(BaseModel):
    """Count and revenue over a time window."""

    count: int = 0
    revenue: int = 0


class RequestSummary(BaseModel):
    """Aggregate view of every request for the operator statistics page."""

    total: int = 0
    active: int = 0
    completed: int = 0
    cancelled: int = 0
    revenue: int = 0
    unique_clients: int = 0
    popular_items: list[tuple[str, int]] = Field(default_factory=list)
