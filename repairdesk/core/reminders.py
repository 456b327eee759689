"""
One-shot, cancellable, predicate-gated reminders keyed by request id.

Each live reminder carries a generation number. Arming bumps it and replaces
any earlier reminder; cancelling or firing drops the id entirely, so only
requests with a live reminder are tracked. When a reminder comes due it is
delivered only if its captured generation is still current and its
predicate (e.g. "request still pending") holds at that moment, so a cancel
that races a fire always wins without timer-handle bookkeeping.

Reminders are driven by ``run_forever``, an asyncio polling loop started by
the transport; tests call ``run_due`` directly with an injected clock.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from repairdesk.errors import DeliveryFailure
from repairdesk.schemas.request_schema import NotificationIntent

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Outbound delivery collaborator.

    Implementations bound every send in time, log their own failures and
    raise ``DeliveryFailure`` when a message could not be sent.
    """

    async def notify(self, intent: NotificationIntent) -> None: ...


@dataclass
class Reminder:
    """A scheduled notification for one request."""
    request_id: int
    fire_at: datetime
    generation: int
    predicate: Callable[[], bool]
    notification: NotificationIntent
    cancelled: bool = False


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReminderScheduler:
    """Owns every reminder record; at most one live reminder per request."""

    def __init__(
        self,
        notifier: Notifier,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._notifier = notifier
        self._clock = clock or _utc_now
        self._reminders: dict[int, Reminder] = {}
        self._generations: dict[int, int] = {}
        self._lock = threading.Lock()

    def arm(
        self,
        request_id: int,
        fire_at: datetime,
        predicate: Callable[[], bool],
        notification: NotificationIntent,
    ) -> Reminder:
        """Schedule a reminder, atomically replacing any live one for the id."""
        with self._lock:
            generation = self._generations.get(request_id, 0) + 1
            self._generations[request_id] = generation
            previous = self._reminders.get(request_id)
            if previous is not None:
                previous.cancelled = True
            reminder = Reminder(
                request_id=request_id,
                fire_at=fire_at,
                generation=generation,
                predicate=predicate,
                notification=notification,
            )
            self._reminders[request_id] = reminder

        if previous is not None:
            logger.info("Reminder for request %s replaced, fires at %s", request_id, fire_at)
        else:
            logger.info("Reminder for request %s armed, fires at %s", request_id, fire_at)
        return reminder

    def cancel(self, request_id: int) -> bool:
        """Cancel the live reminder for a request.

        Idempotent: unknown or already-fired ids are a no-op.

        Returns:
            True if a live reminder was cancelled.
        """
        with self._lock:
            reminder = self._reminders.pop(request_id, None)
            if reminder is None:
                return False
            reminder.cancelled = True
            self._generations.pop(request_id, None)
        logger.info("Reminder for request %s cancelled", request_id)
        return True

    def get(self, request_id: int) -> Optional[Reminder]:
        """Return the live reminder for a request, if any."""
        with self._lock:
            return self._reminders.get(request_id)

    def pending(self) -> list[Reminder]:
        """All live reminders ordered by fire time."""
        with self._lock:
            return sorted(self._reminders.values(), key=lambda r: r.fire_at)

    def _claim(self, reminder: Reminder) -> bool:
        """Remove a due reminder if it is still the current generation."""
        with self._lock:
            current = self._reminders.get(reminder.request_id)
            if (
                current is not reminder
                or reminder.cancelled
                or self._generations.get(reminder.request_id) != reminder.generation
            ):
                return False
            del self._reminders[reminder.request_id]
            del self._generations[reminder.request_id]
            return True

    async def fire(self, reminder: Reminder) -> bool:
        """
        Deliver a due reminder if it is still current and its predicate holds.

        The entry is consumed before delivery is attempted, so a failed send
        is never retried.

        Returns:
            True if a notification was handed to the notifier.
        """
        if not self._claim(reminder):
            logger.debug("Stale reminder for request %s skipped", reminder.request_id)
            return False

        if not reminder.predicate():
            logger.info(
                "Reminder for request %s suppressed, request no longer relevant",
                reminder.request_id,
            )
            return False

        try:
            await self._notifier.notify(reminder.notification)
        except DeliveryFailure:
            logger.warning(
                "Reminder for request %s could not be delivered", reminder.request_id
            )
        return True

    async def run_due(self) -> int:
        """Fire every reminder whose time has come. Returns how many were sent."""
        now = self._clock()
        due = [r for r in self.pending() if r.fire_at <= now]
        sent = 0
        for reminder in due:
            if await self.fire(reminder):
                sent += 1
        return sent

    async def run_forever(self, poll_interval: float) -> None:
        """Poll for due reminders until the task is cancelled."""
        logger.info("Reminder loop started (poll every %.1fs)", poll_interval)
        while True:
            try:
                await self.run_due()
            except Exception:
                logger.exception("Reminder loop iteration failed")
            await asyncio.sleep(poll_interval)

    def reset(self) -> None:
        with self._lock:
            self._reminders.clear()
            self._generations.clear()
