"""
Application wiring: builds the stores and the dispatcher from settings.

Every store is created here once and shared, so the live bot, the console
demo and the tests all run the same object graph.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from repairdesk.bot.dispatcher import Dispatcher
from repairdesk.config import AppConfig, settings
from repairdesk.core.loyalty import LoyaltyLedger
from repairdesk.core.rate_limiter import RateLimiter
from repairdesk.core.reminders import Notifier, ReminderScheduler
from repairdesk.core.request_store import RequestStore
from repairdesk.core.state_store import ConversationStateStore
from repairdesk.tools.profiles import ProfileStore


@dataclass
class RepairDesk:
    """The shared object graph behind one running bot."""
    ledger: LoyaltyLedger
    scheduler: ReminderScheduler
    requests: RequestStore
    conversations: ConversationStateStore
    rate_limiter: RateLimiter
    profiles: ProfileStore
    dispatcher: Dispatcher


def build_desk(
    notifier: Notifier,
    config: AppConfig = settings,
    clock: Optional[Callable[[], datetime]] = None,
    operator_ids: Optional[Iterable[int]] = None,
) -> RepairDesk:
    """Wire the stores and dispatcher around an outbound notifier.

    ``operator_ids`` overrides the configured operator allow-list.
    """
    if operator_ids is not None:
        config = replace(config, bot=replace(config.bot, operator_ids=tuple(operator_ids)))
    is_operator = config.is_operator
    timing = config.timing

    ledger = LoyaltyLedger()
    scheduler = ReminderScheduler(notifier, clock=clock)
    requests = RequestStore(
        ledger,
        scheduler,
        is_operator=is_operator,
        clock=clock,
        reminder_delay=timedelta(hours=timing.reminder_delay_hours),
        pre_schedule_lead=timedelta(hours=timing.pre_schedule_lead_hours),
        tz_name=config.business.timezone,
    )
    conversations = ConversationStateStore(
        ttl_sec=timing.conversation_ttl_sec, is_operator=is_operator, clock=clock
    )
    rate_limiter = RateLimiter(timing.rate_limit_window_sec, clock=clock)
    profiles = ProfileStore()

    dispatcher = Dispatcher(
        requests=requests,
        conversations=conversations,
        rate_limiter=rate_limiter,
        ledger=ledger,
        profiles=profiles,
        notifier=notifier,
        is_operator=is_operator,
        operator_ids=config.bot.operator_ids,
        clock=clock,
        tz_name=config.business.timezone,
        max_message_length=config.bot.max_message_length,
    )
    return RepairDesk(
        ledger=ledger,
        scheduler=scheduler,
        requests=requests,
        conversations=conversations,
        rate_limiter=rate_limiter,
        profiles=profiles,
        dispatcher=dispatcher,
    )
