"""
Repair request store: lifecycle owner and read-side query surface.

The store is the only writer of a request's status, comment and schedule.
Creating a request is one logical unit (record, loyalty credit, 24h
reminder) performed under the store lock; so is a status change (status,
reminder cancel, owner notification intent). Notification intents are
returned to the caller for delivery after all bookkeeping is done.

Usage:
    store = RequestStore(ledger, scheduler, is_operator=settings.is_operator)
    request = store.create(user_id, "service_1", is_bundle=False, price=1500)
    update = store.transition(request.id, RequestStatus.IN_PROGRESS, operator_id)
    for intent in update.notifications:
        await notifier.notify(intent)
"""

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional, Union

from repairdesk.core.lifecycle import check_transition
from repairdesk.core.loyalty import LoyaltyLedger, points_for_order
from repairdesk.core.reminders import Reminder, ReminderScheduler
from repairdesk.errors import Forbidden, InvalidInput, InvalidTransition, NotFound
from repairdesk.messages import templates
from repairdesk.schemas.customer_schema import ClientRollup
from repairdesk.schemas.request_schema import (
    ACTIVE_STATUSES,
    NotificationIntent,
    RepairRequest,
    RequestStats,
    RequestStatus,
    RequestSummary,
    Urgency,
)
from repairdesk.tools.catalog import get_catalog_item

logger = logging.getLogger(__name__)

REQUEST_EXPORT_COLUMNS = ["id", "userId", "catalogItemId", "finalPrice", "status", "createdAt"]
CLIENT_EXPORT_COLUMNS = ["userId", "totalOrders", "totalSpent", "points", "lastActiveAt"]


@dataclass
class StoreUpdate:
    """Result of an operator mutation: the new snapshot plus intents to deliver."""
    request: RepairRequest
    notifications: list[NotificationIntent] = field(default_factory=list)
    reminder: Optional[Reminder] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RequestStore:
    """Keyed store of repair requests enforcing the lifecycle table."""

    def __init__(
        self,
        ledger: LoyaltyLedger,
        scheduler: ReminderScheduler,
        is_operator: Callable[[int], bool],
        clock: Optional[Callable[[], datetime]] = None,
        reminder_delay: timedelta = timedelta(hours=24),
        pre_schedule_lead: timedelta = timedelta(hours=2),
        tz_name: str = "UTC",
    ) -> None:
        self._ledger = ledger
        self._scheduler = scheduler
        self._is_operator = is_operator
        self._clock = clock or _utc_now
        self.reminder_delay = reminder_delay
        self.pre_schedule_lead = pre_schedule_lead
        self.tz_name = tz_name
        self._requests: dict[int, RepairRequest] = {}
        self._last_id = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def _next_id(self, created_at: datetime) -> int:
        """Millisecond timestamp, bumped past the last id so ids never repeat."""
        candidate = int(created_at.timestamp() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return candidate

    def create(
        self, user_id: int, catalog_item_id: str, is_bundle: bool, price: int
    ) -> RepairRequest:
        """
        Place a new pending request.

        Credits loyalty points (a tenth of the price, or the bundle's fixed
        points) and arms a reminder that fires after ``reminder_delay`` only
        if the request is still pending.

        Raises:
            InvalidInput: If the price is negative.
            NotFound: If a bundle id is not in the offer catalog.
        """
        if price < 0:
            raise InvalidInput(f"Price must be >= 0, got {price}")

        bundle_points = None
        if is_bundle:
            item = get_catalog_item(catalog_item_id)
            if item is None or not item.is_bundle:
                raise NotFound(f"Offer {catalog_item_id} not found.")
            bundle_points = item.points

        with self._lock:
            now = self._clock()
            request_id = self._next_id(now)
            request = RepairRequest(
                id=request_id,
                user_id=user_id,
                catalog_item_id=catalog_item_id,
                is_bundle=is_bundle,
                final_price=price,
                created_at=now,
            )
            self._requests[request_id] = request

            points = points_for_order(price, bundle_points)
            reason = "Special offer purchase" if is_bundle else "New repair request"
            self._ledger.credit(user_id, points, reason)

            self._scheduler.arm(
                request_id,
                now + self.reminder_delay,
                predicate=lambda: self._has_status(request_id, RequestStatus.PENDING),
                notification=NotificationIntent(
                    target_user_id=user_id,
                    text=templates.pending_reminder(request_id),
                    urgency=Urgency.HIGH,
                ),
            )

        logger.info(
            "Request created: %s user=%s item=%s price=%d points=%d",
            request_id, user_id, catalog_item_id, price, points,
        )
        return request.model_copy()

    def _require_operator(self, acting_user_id: int) -> None:
        if not self._is_operator(acting_user_id):
            raise Forbidden(f"User {acting_user_id} is not an operator.")

    def _get_live(self, request_id: int) -> RepairRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise NotFound(f"Request {request_id} not found.")
        return request

    def _get_editable(self, request_id: int, acting_user_id: int) -> RepairRequest:
        """Fetch a request an operator may still edit."""
        request = self._get_live(request_id)
        self._require_operator(acting_user_id)
        if request.is_terminal:
            raise InvalidTransition(
                f"Request {request_id} is {request.status.value} and can no longer be edited."
            )
        return request

    def transition(
        self,
        request_id: int,
        new_status: Union[RequestStatus, str],
        acting_user_id: int,
    ) -> StoreUpdate:
        """
        Move a request to a new status.

        Cancels any live reminder for the request and yields a status-update
        notification for its owner.

        Raises:
            NotFound: Unknown request id.
            Forbidden: Actor is not an operator.
            InvalidTransition: ``new_status`` is unreachable from the current status.
            InvalidInput: ``new_status`` is not a known status.
        """
        try:
            target = RequestStatus(new_status)
        except ValueError:
            raise InvalidInput(f"Unknown status: {new_status!r}") from None

        with self._lock:
            request = self._get_live(request_id)
            self._require_operator(acting_user_id)
            old_status = request.status
            check_transition(old_status, target)
            request.status = target
            self._scheduler.cancel(request_id)
            snapshot = request.model_copy()

        logger.info(
            "Request %s: %s -> %s by %s",
            request_id, old_status.value, target.value, acting_user_id,
        )
        return StoreUpdate(
            request=snapshot,
            notifications=[
                NotificationIntent(
                    target_user_id=snapshot.user_id,
                    text=templates.status_update(snapshot),
                )
            ],
        )

    def set_comment(self, request_id: int, text: str, acting_user_id: int) -> RepairRequest:
        """Attach an operator comment to a non-terminal request."""
        if not text or not text.strip():
            raise InvalidInput("Comment must not be empty.")
        with self._lock:
            request = self._get_editable(request_id, acting_user_id)
            request.comment = text.strip()
            snapshot = request.model_copy()
        logger.info("Comment set on request %s by %s", request_id, acting_user_id)
        return snapshot

    def set_schedule(self, request_id: int, when: datetime, acting_user_id: int) -> StoreUpdate:
        """
        Record the appointment time for a non-terminal request.

        Arms a pre-appointment reminder ``pre_schedule_lead`` before ``when``
        if that instant is still in the future; the schedule is recorded
        either way. The owner is notified of the time.

        Raises:
            InvalidInput: If ``when`` is naive or not in the future.
        """
        if when.tzinfo is None:
            raise InvalidInput("Scheduled time must carry a timezone.")

        with self._lock:
            request = self._get_editable(request_id, acting_user_id)
            now = self._clock()
            if when <= now:
                raise InvalidInput("Scheduled time must be in the future.")
            request.scheduled_time = when
            snapshot = request.model_copy()

            reminder = None
            remind_at = when - self.pre_schedule_lead
            if remind_at > now:
                reminder = self._scheduler.arm(
                    request_id,
                    remind_at,
                    predicate=lambda: self._is_live(request_id),
                    notification=NotificationIntent(
                        target_user_id=snapshot.user_id,
                        text=templates.schedule_reminder(snapshot, self.tz_name),
                        urgency=Urgency.HIGH,
                    ),
                )

        if reminder is None:
            logger.info(
                "Request %s scheduled for %s, too close for a pre-appointment reminder",
                request_id, when,
            )
        else:
            logger.info("Request %s scheduled for %s", request_id, when)
        return StoreUpdate(
            request=snapshot,
            notifications=[
                NotificationIntent(
                    target_user_id=snapshot.user_id,
                    text=templates.schedule_announcement(
                        snapshot,
                        self.tz_name,
                        reminder_lead=self.pre_schedule_lead if reminder is not None else None,
                    ),
                )
            ],
            reminder=reminder,
        )

    # ------------------------------------------------------------------ #
    # Reminder predicates
    # ------------------------------------------------------------------ #

    def _has_status(self, request_id: int, status: RequestStatus) -> bool:
        with self._lock:
            request = self._requests.get(request_id)
            return request is not None and request.status == status

    def _is_live(self, request_id: int) -> bool:
        with self._lock:
            request = self._requests.get(request_id)
            return request is not None and not request.is_terminal

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def _snapshot(self) -> list[RepairRequest]:
        """Copies of every request, newest first."""
        with self._lock:
            requests = [r.model_copy() for r in self._requests.values()]
        return sorted(requests, key=lambda r: (r.created_at, r.id), reverse=True)

    def get(self, request_id: int) -> RepairRequest:
        with self._lock:
            return self._get_live(request_id).model_copy()

    def all(self) -> list[RepairRequest]:
        return self._snapshot()

    def for_user(self, user_id: int) -> list[RepairRequest]:
        """A user's requests, newest first."""
        return [r for r in self._snapshot() if r.user_id == user_id]

    def with_status(self, statuses: Iterable[RequestStatus]) -> list[RepairRequest]:
        wanted = frozenset(statuses)
        return [r for r in self._snapshot() if r.status in wanted]

    def active(self) -> list[RepairRequest]:
        return self.with_status(ACTIVE_STATUSES)

    def client_ids(self) -> list[int]:
        """Distinct owners of any request, in order of first request."""
        with self._lock:
            ordered = sorted(self._requests.values(), key=lambda r: (r.created_at, r.id))
        return list(dict.fromkeys(r.user_id for r in ordered))

    def stats(self, since: datetime, until: Optional[datetime] = None) -> RequestStats:
        """Count and revenue of requests created after ``since`` (up to ``until``)."""
        window = [
            r for r in self._snapshot()
            if r.created_at > since and (until is None or r.created_at <= until)
        ]
        return RequestStats(count=len(window), revenue=sum(r.final_price for r in window))

    def summary(self, top_n: int = 5) -> RequestSummary:
        requests = self._snapshot()
        popularity = Counter(r.catalog_item_id for r in requests)
        return RequestSummary(
            total=len(requests),
            active=sum(1 for r in requests if r.status in ACTIVE_STATUSES),
            completed=sum(1 for r in requests if r.status == RequestStatus.COMPLETED),
            cancelled=sum(1 for r in requests if r.status == RequestStatus.CANCELLED),
            revenue=sum(r.final_price for r in requests),
            unique_clients=len({r.user_id for r in requests}),
            popular_items=popularity.most_common(top_n),
        )

    def client_rollups(self) -> list[ClientRollup]:
        """Per-client totals, in order of each client's first request."""
        requests = self._snapshot()
        rollups = []
        for user_id in self.client_ids():
            own = [r for r in requests if r.user_id == user_id]
            rollups.append(ClientRollup(
                user_id=user_id,
                total_orders=len(own),
                total_spent=sum(r.final_price for r in own),
                points=self._ledger.balance(user_id),
                last_active_at=max(r.created_at for r in own),
            ))
        return rollups

    # ------------------------------------------------------------------ #
    # Export
    # ------------------------------------------------------------------ #

    def request_export_rows(self) -> list[dict[str, Any]]:
        """Rows keyed by ``REQUEST_EXPORT_COLUMNS``, oldest first."""
        return [
            {
                "id": r.id,
                "userId": r.user_id,
                "catalogItemId": r.catalog_item_id,
                "finalPrice": r.final_price,
                "status": r.status.value,
                "createdAt": r.created_at,
            }
            for r in reversed(self._snapshot())
        ]

    def client_export_rows(self) -> list[dict[str, Any]]:
        """Rows keyed by ``CLIENT_EXPORT_COLUMNS``."""
        return [
            {
                "userId": c.user_id,
                "totalOrders": c.total_orders,
                "totalSpent": c.total_spent,
                "points": c.points,
                "lastActiveAt": c.last_active_at,
            }
            for c in self.client_rollups()
        ]

    def reset(self) -> None:
        """Clear all requests. Used by test fixtures for isolation."""
        with self._lock:
            self._requests.clear()
            self._last_id = 0
