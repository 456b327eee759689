from repairdesk.core.lifecycle import check_transition, valid_targets
from repairdesk.core.loyalty import LoyaltyLedger
from repairdesk.core.rate_limiter import RateLimiter
from repairdesk.core.reminders import ReminderScheduler
from repairdesk.core.request_store import RequestStore
from repairdesk.core.state_store import ConversationStateStore

__all__ = [
    "check_transition",
    "valid_targets",
    "LoyaltyLedger",
    "RateLimiter",
    "ReminderScheduler",
    "RequestStore",
    "ConversationStateStore",
]
