"""
Inbound event dispatcher.

Maps platform-neutral events (commands, free text, button callbacks) onto
the core stores and renders the replies for the originating chat.
Notifications for other users (status updates, reminders, new-request
alerts, broadcasts) go through the Notifier after every store mutation has
been committed.

Typed core failures become user-facing replies here; any other exception is
logged, reported as a generic failure, and resets the conversation mode.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional
from zoneinfo import ZoneInfo

from repairdesk.core.loyalty import LoyaltyLedger, points_for_order
from repairdesk.core.rate_limiter import RateLimiter
from repairdesk.core.reminders import Notifier
from repairdesk.core.request_store import (
    CLIENT_EXPORT_COLUMNS,
    REQUEST_EXPORT_COLUMNS,
    RequestStore,
)
from repairdesk.core.state_store import ConversationStateStore
from repairdesk.errors import (
    DeliveryFailure,
    Forbidden,
    InvalidInput,
    InvalidTransition,
    NotFound,
    RepairDeskError,
)
from repairdesk.logging_context import bound_event, install_event_filter
from repairdesk.messages import keyboards, templates
from repairdesk.messages.keyboards import Keyboard
from repairdesk.schemas.conversation_schema import (
    AwaitingBroadcastText,
    AwaitingComment,
    AwaitingEmail,
    AwaitingPhone,
    AwaitingSchedule,
    ConversationMode,
    Idle,
)
from repairdesk.schemas.request_schema import (
    EventKind,
    InboundEvent,
    NotificationIntent,
    Urgency,
)
from repairdesk.tools.catalog import (
    OFFER_CATALOG,
    SERVICE_CATALOG,
    get_all_offers,
    get_all_services,
    get_catalog_item,
)
from repairdesk.tools.export import export_filename, to_csv
from repairdesk.tools.profiles import ProfileStore
from repairdesk.utils import parse_schedule_time, sanitize_text, split_message

logger = logging.getLogger(__name__)
install_event_filter([logger])

CUSTOMER_COMMANDS = frozenset({"start", "services", "offers", "profile", "help", "settings", "contacts"})
OPERATOR_COMMANDS = frozenset({"admin", "active", "all", "clients", "stats", "broadcast"})
UNLIMITED_COMMANDS = frozenset({"start"})


@dataclass
class Document:
    """A file attachment for the originating chat."""
    filename: str
    content: bytes
    caption: str = ""


@dataclass
class Reply:
    """One outbound message for the chat that sent the event."""
    text: str
    buttons: Keyboard = field(default_factory=list)
    menu: Optional[list[list[str]]] = None
    force_reply: bool = False
    document: Optional[Document] = None


def _parse_id(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise InvalidInput(f"Malformed request id: {raw!r}") from None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Dispatcher:
    """Routes inbound events to the core and renders replies."""

    def __init__(
        self,
        requests: RequestStore,
        conversations: ConversationStateStore,
        rate_limiter: RateLimiter,
        ledger: LoyaltyLedger,
        profiles: ProfileStore,
        notifier: Notifier,
        is_operator: Callable[[int], bool],
        operator_ids: Iterable[int] = (),
        clock: Optional[Callable[[], datetime]] = None,
        tz_name: str = "UTC",
        max_message_length: int = 4096,
    ) -> None:
        self._requests = requests
        self._conversations = conversations
        self._rate_limiter = rate_limiter
        self._ledger = ledger
        self._profiles = profiles
        self._notifier = notifier
        self._is_operator = is_operator
        self._operator_ids = tuple(operator_ids)
        self._clock = clock or _utc_now
        self._tz_name = tz_name
        self._max_length = max_message_length

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    async def handle(self, event: InboundEvent) -> list[Reply]:
        """Process one inbound event and return the replies for its chat."""
        with bound_event(event.conversation_id, event.user_id):
            return await self._handle(event)

    async def _handle(self, event: InboundEvent) -> list[Reply]:
        logger.info("Event received: kind=%s payload=%r", event.kind.value, event.payload[:64])
        try:
            if event.kind == EventKind.COMMAND:
                replies = await self._handle_command(event, event.payload.strip().lower())
            elif event.kind == EventKind.CALLBACK_ACTION:
                replies = await self._handle_callback(event, event.payload.strip())
            else:
                command = keyboards.MENU_COMMANDS.get(event.payload.strip())
                if command is not None:
                    replies = await self._handle_command(event, command)
                else:
                    replies = await self._handle_text(event)
        except RepairDeskError as exc:
            logger.info("Event rejected: %s: %s", type(exc).__name__, exc)
            replies = [self._render_failure(exc)]
        except Exception:
            logger.exception("Unhandled error while processing %s event", event.kind.value)
            self._conversations.clear(event.conversation_id)
            replies = [Reply(templates.GENERIC_ERROR)]
        return self._split(replies)

    def _render_failure(self, exc: RepairDeskError) -> Reply:
        if isinstance(exc, Forbidden):
            return Reply(templates.FORBIDDEN)
        if isinstance(exc, NotFound):
            return Reply(templates.NOT_FOUND)
        if isinstance(exc, InvalidTransition):
            return Reply(f"⚠️ {exc}")
        if isinstance(exc, InvalidInput):
            return Reply(templates.INVALID_INPUT)
        return Reply(templates.GENERIC_ERROR)

    def _split(self, replies: list[Reply]) -> list[Reply]:
        """Break over-long texts into several messages; markup stays on the last one."""
        result: list[Reply] = []
        for reply in replies:
            chunks = split_message(reply.text, self._max_length)
            for chunk in chunks[:-1]:
                result.append(Reply(chunk))
            result.append(replace(reply, text=chunks[-1]))
        return result

    async def _deliver(self, intents: Iterable[NotificationIntent]) -> tuple[int, int]:
        """Send intents best-effort. Returns (delivered, failed).

        Low-urgency messages are skipped for users who turned notifications off.
        """
        delivered = failed = 0
        for intent in intents:
            if intent.urgency == Urgency.LOW and not self._profiles.wants_notifications(
                intent.target_user_id
            ):
                logger.debug("User %s opted out of notifications", intent.target_user_id)
                continue
            try:
                await self._notifier.notify(intent)
                delivered += 1
            except DeliveryFailure:
                failed += 1
        return delivered, failed

    def _require_operator(self, user_id: int) -> None:
        if not self._is_operator(user_id):
            raise Forbidden(f"User {user_id} is not an operator.")

    # ------------------------------------------------------------------ #
    # Commands
    # ------------------------------------------------------------------ #

    async def _handle_command(self, event: InboundEvent, command: str) -> list[Reply]:
        if command in OPERATOR_COMMANDS:
            self._require_operator(event.user_id)
        elif command not in CUSTOMER_COMMANDS:
            raise InvalidInput(f"Unknown command: {command!r}")

        if command not in UNLIMITED_COMMANDS and not self._rate_limiter.allow(event.user_id):
            return [Reply(templates.RATE_LIMITED)]

        handler = getattr(self, f"_cmd_{command}")
        return await handler(event)

    async def _cmd_start(self, event: InboundEvent) -> list[Reply]:
        is_operator = self._is_operator(event.user_id)
        menu = keyboards.operator_layout() if is_operator else keyboards.menu_layout(False)
        return [Reply(templates.welcome(is_operator), menu=menu)]

    async def _cmd_services(self, event: InboundEvent) -> list[Reply]:
        items = get_all_services()
        return [Reply(templates.services_list(items), buttons=keyboards.services_keyboard(items))]

    async def _cmd_offers(self, event: InboundEvent) -> list[Reply]:
        items = get_all_offers()
        return [Reply(templates.offers_list(items), buttons=keyboards.offers_keyboard(items))]

    async def _cmd_profile(self, event: InboundEvent) -> list[Reply]:
        text = templates.profile(
            event.user_id,
            self._profiles.get(event.user_id),
            self._ledger.balance(event.user_id),
            self._requests.for_user(event.user_id),
        )
        return [Reply(text, buttons=keyboards.profile_keyboard())]

    async def _cmd_help(self, event: InboundEvent) -> list[Reply]:
        return [Reply(templates.help_menu(), buttons=keyboards.help_keyboard())]

    async def _cmd_settings(self, event: InboundEvent) -> list[Reply]:
        profile = self._profiles.get(event.user_id)
        return [Reply(templates.settings_screen(profile), buttons=keyboards.settings_keyboard())]

    async def _cmd_contacts(self, event: InboundEvent) -> list[Reply]:
        return [Reply(templates.contacts(), buttons=[[keyboards.BACK_TO_MAIN]])]

    async def _cmd_admin(self, event: InboundEvent) -> list[Reply]:
        return [Reply(templates.operator_panel(), menu=keyboards.operator_layout())]

    async def _cmd_active(self, event: InboundEvent) -> list[Reply]:
        active = self._requests.active()
        profiles = self._profiles.profiles_for([r.user_id for r in active])
        return [Reply(
            templates.active_requests(active, profiles),
            buttons=keyboards.request_list_keyboard(active),
        )]

    async def _cmd_all(self, event: InboundEvent) -> list[Reply]:
        requests = self._requests.all()
        profiles = self._profiles.profiles_for([r.user_id for r in requests])
        return [Reply(templates.all_requests(requests, profiles), buttons=[[keyboards.BACK_TO_ADMIN]])]

    async def _cmd_clients(self, event: InboundEvent) -> list[Reply]:
        rollups = sorted(self._requests.client_rollups(), key=lambda c: c.total_spent, reverse=True)
        profiles = self._profiles.profiles_for([c.user_id for c in rollups])
        return [Reply(templates.clients(rollups, profiles), buttons=keyboards.clients_keyboard())]

    async def _cmd_stats(self, event: InboundEvent) -> list[Reply]:
        day, week, month = self._period_starts()
        text = templates.statistics(
            self._requests.summary(),
            self._requests.stats(day),
            self._requests.stats(week),
            self._requests.stats(month),
        )
        return [Reply(text, buttons=keyboards.stats_keyboard())]

    async def _cmd_broadcast(self, event: InboundEvent) -> list[Reply]:
        self._conversations.set(
            event.conversation_id, AwaitingBroadcastText(), acting_user_id=event.user_id
        )
        return [Reply(templates.ASK_BROADCAST, force_reply=True)]

    def _period_starts(self) -> tuple[datetime, datetime, datetime]:
        """Start of today, this week (Monday) and this month in business time."""
        local_now = self._clock().astimezone(ZoneInfo(self._tz_name))
        day = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        week = day - timedelta(days=day.weekday())
        month = day.replace(day=1)
        return day, week, month

    # ------------------------------------------------------------------ #
    # Callbacks
    # ------------------------------------------------------------------ #

    async def _handle_callback(self, event: InboundEvent, action: str) -> list[Reply]:
        if action in SERVICE_CATALOG or action in OFFER_CATALOG:
            return await self._create_request(event, action)
        if action == "back_to_main":
            return await self._cmd_start(event)
        if action == "back_to_admin":
            self._require_operator(event.user_id)
            return await self._cmd_admin(event)
        if action == "show_history":
            return [Reply(
                templates.history(self._requests.for_user(event.user_id)),
                buttons=[[keyboards.BACK_TO_MAIN]],
            )]
        if action.startswith("help_"):
            text = templates.help_topic(action[len("help_"):])
            if text is None:
                raise InvalidInput(f"Unknown help topic: {action!r}")
            return [Reply(text, buttons=keyboards.help_keyboard())]
        if action.startswith("settings_"):
            return await self._handle_settings(event, action[len("settings_"):])
        if action.startswith("update_"):
            return self._request_card(event, _parse_id(action[len("update_"):]))
        if action.startswith("status_"):
            raw_id, _, status = action[len("status_"):].partition("_")
            return await self._change_status(event, _parse_id(raw_id), status)
        if action.startswith("comment_"):
            return self._await_request_input(event, AwaitingComment(_parse_id(action[len("comment_"):])))
        if action.startswith("schedule_"):
            return self._await_request_input(event, AwaitingSchedule(_parse_id(action[len("schedule_"):])))
        if action == "export_stats":
            return [self._export_requests(event)]
        if action == "export_clients":
            return [self._export_clients(event)]
        raise InvalidInput(f"Unknown callback action: {action!r}")

    async def _create_request(self, event: InboundEvent, item_id: str) -> list[Reply]:
        item = get_catalog_item(item_id)
        request = self._requests.create(event.user_id, item.id, item.is_bundle, item.price)
        points = points_for_order(item.price, item.points)

        await self._deliver(
            NotificationIntent(target_user_id=op, text=templates.new_request_alert(request))
            for op in self._operator_ids
        )
        return [Reply(
            templates.request_created(request, item, points),
            buttons=[[keyboards.BACK_TO_MAIN]],
        )]

    async def _handle_settings(self, event: InboundEvent, setting: str) -> list[Reply]:
        if setting == "notifications":
            profile = self._profiles.toggle_notifications(event.user_id)
            return [
                Reply(templates.notifications_toggled(profile.notifications)),
                Reply(templates.settings_screen(profile), buttons=keyboards.settings_keyboard()),
            ]
        if setting == "contacts":
            self._conversations.set(event.conversation_id, AwaitingPhone(), acting_user_id=event.user_id)
            return [Reply(templates.ASK_PHONE, force_reply=True)]
        if setting == "language":
            return [Reply(templates.LANGUAGE_UNAVAILABLE)]
        if setting == "profile":
            return await self._cmd_settings(event)
        raise InvalidInput(f"Unknown setting: {setting!r}")

    def _request_card(self, event: InboundEvent, request_id: int) -> list[Reply]:
        self._require_operator(event.user_id)
        request = self._requests.get(request_id)
        return [Reply(
            templates.request_card(request, self._profiles.get(request.user_id)),
            buttons=keyboards.request_card_keyboard(request),
        )]

    async def _change_status(self, event: InboundEvent, request_id: int, status: str) -> list[Reply]:
        update = self._requests.transition(request_id, status, event.user_id)
        await self._deliver(update.notifications)
        return [Reply(templates.status_changed(update.request))] + await self._cmd_active(event)

    def _await_request_input(self, event: InboundEvent, mode: ConversationMode) -> list[Reply]:
        self._require_operator(event.user_id)
        request = self._requests.get(mode.request_id)
        if request.is_terminal:
            return [Reply(templates.invalid_transition(request))]
        self._conversations.set(event.conversation_id, mode, acting_user_id=event.user_id)
        prompt = templates.ASK_COMMENT if isinstance(mode, AwaitingComment) else templates.ASK_SCHEDULE
        return [Reply(prompt, force_reply=True)]

    def _export_requests(self, event: InboundEvent) -> Reply:
        self._require_operator(event.user_id)
        csv_text = to_csv(REQUEST_EXPORT_COLUMNS, self._requests.request_export_rows(), self._tz_name)
        return Reply(
            templates.export_caption("stats"),
            document=Document(
                filename=export_filename("statistics", self._clock(), self._tz_name),
                content=csv_text.encode("utf-8"),
                caption=templates.export_caption("stats"),
            ),
        )

    def _export_clients(self, event: InboundEvent) -> Reply:
        self._require_operator(event.user_id)
        csv_text = to_csv(CLIENT_EXPORT_COLUMNS, self._requests.client_export_rows(), self._tz_name)
        return Reply(
            templates.export_caption("clients"),
            document=Document(
                filename=export_filename("clients", self._clock(), self._tz_name),
                content=csv_text.encode("utf-8"),
                caption=templates.export_caption("clients"),
            ),
        )

    # ------------------------------------------------------------------ #
    # Free text: input capture
    # ------------------------------------------------------------------ #

    async def _handle_text(self, event: InboundEvent) -> list[Reply]:
        mode = self._conversations.get(event.conversation_id)
        if isinstance(mode, Idle):
            return []
        if isinstance(mode, AwaitingBroadcastText):
            return await self._send_broadcast(event)
        if isinstance(mode, AwaitingComment):
            return self._save_comment(event, mode.request_id)
        if isinstance(mode, AwaitingSchedule):
            return await self._save_schedule(event, mode.request_id)
        if isinstance(mode, AwaitingPhone):
            return self._save_phone(event)
        if isinstance(mode, AwaitingEmail):
            return self._save_email(event)
        raise InvalidInput(f"Unhandled conversation mode: {mode!r}")

    async def _send_broadcast(self, event: InboundEvent) -> list[Reply]:
        self._require_operator(event.user_id)
        text = sanitize_text(event.payload)
        if not text:
            return [Reply(templates.INVALID_INPUT)]
        self._conversations.clear(event.conversation_id)

        recipients = self._requests.client_ids()
        if not recipients:
            return [Reply(templates.NOTHING_TO_BROADCAST)]
        delivered, failed = await self._deliver(
            NotificationIntent(target_user_id=uid, text=templates.broadcast(text), urgency=Urgency.LOW)
            for uid in recipients
        )
        logger.info("Broadcast sent: delivered=%d failed=%d", delivered, failed)
        return [Reply(templates.broadcast_report(delivered, failed))]

    def _save_comment(self, event: InboundEvent, request_id: int) -> list[Reply]:
        text = sanitize_text(event.payload)
        if not text:
            return [Reply(templates.INVALID_INPUT)]
        try:
            self._requests.set_comment(request_id, text, event.user_id)
        except (NotFound, Forbidden, InvalidTransition):
            self._conversations.clear(event.conversation_id)
            raise
        self._conversations.clear(event.conversation_id)
        return [Reply(templates.COMMENT_SAVED, buttons=keyboards.back_to_request(request_id))]

    async def _save_schedule(self, event: InboundEvent, request_id: int) -> list[Reply]:
        try:
            when = parse_schedule_time(event.payload, self._tz_name)
            update = self._requests.set_schedule(request_id, when, event.user_id)
        except InvalidInput:
            return [Reply(templates.INVALID_SCHEDULE)]
        except (NotFound, Forbidden, InvalidTransition):
            self._conversations.clear(event.conversation_id)
            raise
        self._conversations.clear(event.conversation_id)
        await self._deliver(update.notifications)
        return [Reply(templates.SCHEDULE_SAVED, buttons=keyboards.back_to_request(request_id))]

    def _save_phone(self, event: InboundEvent) -> list[Reply]:
        try:
            self._profiles.set_phone(event.user_id, event.payload)
        except InvalidInput:
            return [Reply(templates.INVALID_PHONE)]
        self._conversations.set(event.conversation_id, AwaitingEmail(), acting_user_id=event.user_id)
        return [Reply(templates.ASK_EMAIL, force_reply=True)]

    def _save_email(self, event: InboundEvent) -> list[Reply]:
        try:
            self._profiles.set_email(event.user_id, event.payload)
        except InvalidInput:
            return [Reply(templates.INVALID_EMAIL)]
        self._conversations.clear(event.conversation_id)
        return [Reply(templates.CONTACTS_SAVED, buttons=keyboards.back_to_settings())]
