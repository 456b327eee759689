"""
Outbound message texts.

Every user-visible string is built here so stores and the dispatcher only
deal with data. Business details come from configuration.
"""

from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from repairdesk.config import settings
from repairdesk.schemas.catalog_schema import CatalogItem
from repairdesk.schemas.customer_schema import ClientRollup, UserProfile
from repairdesk.schemas.request_schema import (
    RepairRequest,
    RequestStats,
    RequestStatus,
    RequestSummary,
)
from repairdesk.tools.catalog import HELP_TOPICS, get_item_name

_biz = settings.business

DATE_FORMAT = "%d.%m.%Y"
DATETIME_FORMAT = "%d.%m.%Y %H:%M"
NOT_SET = "Not set"

STATUS_LABELS: dict[RequestStatus, str] = {
    RequestStatus.PENDING: "⏳ Pending",
    RequestStatus.IN_PROGRESS: "🔧 In progress",
    RequestStatus.COMPLETED: "✅ Completed",
    RequestStatus.CANCELLED: "❌ Cancelled",
}

STATUS_MESSAGES: dict[RequestStatus, str] = {
    RequestStatus.PENDING: "⏳ Your request is waiting to be processed",
    RequestStatus.IN_PROGRESS: "🔧 Your request is being worked on",
    RequestStatus.COMPLETED: "✅ Your request is complete",
    RequestStatus.CANCELLED: "❌ Your request has been cancelled",
}


def format_dt(value: datetime, tz_name: Optional[str] = None, fmt: str = DATETIME_FORMAT) -> str:
    """Render an aware datetime as wall-clock time in the business timezone."""
    return value.astimezone(ZoneInfo(tz_name or _biz.timezone)).strftime(fmt)


def money(amount: int) -> str:
    return f"{amount}{_biz.currency}"


# ---------------------------------------------------------------------- #
# Notifications produced by the core
# ---------------------------------------------------------------------- #

def pending_reminder(request_id: int) -> str:
    return (
        f"⏰ Reminder: your request #{request_id} is still pending.\n"
        "Don't forget to confirm a convenient time for the repair!"
    )


def status_update(request: RepairRequest) -> str:
    text = (
        f"📢 Status update for request #{request.id}\n\n"
        f"📝 Service: {get_item_name(request.catalog_item_id)}\n"
        f"{STATUS_MESSAGES[request.status]}"
    )
    if request.status == RequestStatus.COMPLETED:
        text += "\n\nThank you for your trust! We look forward to seeing you again!"
    return text


def lead_time(lead: timedelta) -> str:
    """``timedelta(hours=2)`` -> ``2 hours``, ``timedelta(minutes=90)`` -> ``90 minutes``"""
    minutes = int(lead.total_seconds() // 60)
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def schedule_announcement(
    request: RepairRequest, tz_name: str, reminder_lead: Optional[timedelta] = None
) -> str:
    """Owner notice for a new appointment time.

    The reminder line appears only when a pre-appointment reminder was armed.
    """
    text = (
        f"📅 Your request #{request.id} is scheduled for:\n"
        f"{format_dt(request.scheduled_time, tz_name)}"
    )
    if reminder_lead is not None:
        text += f"\n\nWe will remind you {lead_time(reminder_lead)} before the appointment."
    return text


def schedule_reminder(request: RepairRequest, tz_name: str) -> str:
    return (
        f"⏰ Reminder: your appointment for request #{request.id} is at "
        f"{format_dt(request.scheduled_time, tz_name)}."
    )


def new_request_alert(request: RepairRequest) -> str:
    suffix = " (special offer)" if request.is_bundle else ""
    return (
        f"🆕 New request #{request.id}{suffix}\n\n"
        f"👤 Client: {request.user_id}\n"
        f"📝 Service: {get_item_name(request.catalog_item_id)}\n"
        f"💰 Price: {money(request.final_price)}\n"
        f"📅 Created: {format_dt(request.created_at)}"
    )


def broadcast(text: str) -> str:
    return f"📢 Important message:\n\n{text}"


# ---------------------------------------------------------------------- #
# Customer screens
# ---------------------------------------------------------------------- #

def welcome(is_operator: bool) -> str:
    if is_operator:
        return "👋 Welcome to the operator panel!"
    return (
        f"👋 Welcome to {_biz.name}!\n\n"
        "Here you can:\n"
        "• Order a computer repair\n"
        "• Track your order status\n"
        "• Earn bonus points\n"
        "• Use special offers\n"
        "• Manage your contact details"
    )


def services_list(items: list[CatalogItem]) -> str:
    entries = [
        f"{item.name}\n"
        f"💰 Price: {money(item.price)}\n"
        f"⏱ Duration: {item.duration}\n"
        f"📝 {item.description}\n"
        for item in items
    ]
    return "🔧 Choose a service:\n\n" + "\n".join(entries)


def offers_list(items: list[CatalogItem]) -> str:
    entries = [
        f"{item.name}\n"
        f"💰 Price: {money(item.price)}\n"
        f"⭐ Bonus: {item.points} points\n"
        f"⏱ Duration: {item.duration}\n"
        f"📝 {item.description}\n"
        for item in items
    ]
    return "🎁 Special offers:\n\n" + "\n".join(entries)


def request_created(request: RepairRequest, item: CatalogItem, points: int) -> str:
    noun = "Order" if request.is_bundle else "Request"
    return (
        f"✅ {noun} for \"{item.name}\" created!\n\n"
        f"🔢 Number: #{request.id}\n"
        f"💰 Price: {money(request.final_price)}\n"
        f"⏱ Estimated duration: {item.duration}\n\n"
        f"⭐ You earned {points} bonus points!\n\n"
        "We will contact you to confirm the details.\n"
        "You will get a reminder in 24 hours if the status does not change."
    )


def _order_lines(request: RepairRequest) -> str:
    return (
        f"🔧 {get_item_name(request.catalog_item_id)}\n"
        f"💰 Price: {money(request.final_price)}\n"
        f"📅 Date: {format_dt(request.created_at)}\n"
        f"📋 Status: {STATUS_LABELS[request.status]}\n"
    )


def profile(
    user_id: int, user_profile: UserProfile, points: int, requests: list[RepairRequest]
) -> str:
    text = (
        "📱 Your profile:\n\n"
        f"👤 ID: {user_id}\n"
        f"📞 Phone: {user_profile.phone or NOT_SET}\n"
        f"📧 Email: {user_profile.email or NOT_SET}\n"
        f"⭐ Points: {points}\n"
        f"💰 Spent: {money(sum(r.final_price for r in requests))}\n"
        f"📊 Total orders: {len(requests)}\n"
    )
    if requests:
        text += "\nLatest orders:\n\n" + "\n".join(_order_lines(r) for r in requests[:3])
    return text


def history(requests: list[RepairRequest]) -> str:
    if not requests:
        return "📋 You have no orders yet."
    lines = [f"#{r.id}\n" + _order_lines(r) for r in requests]
    return "📋 Order history:\n\n" + "\n".join(lines)


def settings_screen(user_profile: UserProfile) -> str:
    return (
        "⚙️ Settings\n\n"
        f"🔔 Notifications: {'On' if user_profile.notifications else 'Off'}\n"
        f"🌍 Language: {'English' if user_profile.language == 'en' else user_profile.language}\n"
        f"📱 Phone: {user_profile.phone or NOT_SET}\n"
        f"📧 Email: {user_profile.email or NOT_SET}"
    )


def contacts() -> str:
    return (
        "Our contacts:\n\n"
        f"📞 Phone: {_biz.phone}\n"
        f"📧 Email: {_biz.email}\n"
        f"📍 Address: {_biz.address}\n\n"
        "Working hours:\n"
        f"{_biz.hours_weekday}\n"
        f"{_biz.hours_weekend}"
    )


def help_menu() -> str:
    return "❓ Choose a help topic:"


def help_topic(key: str) -> Optional[str]:
    topic = HELP_TOPICS.get(key)
    if topic is None:
        return None
    content = contacts() if key == "contact" else topic["content"]
    return f"{topic['title']}\n\n{content}"


# ---------------------------------------------------------------------- #
# Operator screens
# ---------------------------------------------------------------------- #

def operator_panel() -> str:
    return "⚙️ Operator panel"


def active_requests(requests: list[RepairRequest], profiles: dict[int, UserProfile]) -> str:
    if not requests:
        return "📋 No active requests"
    entries = []
    for r in requests:
        p = profiles.get(r.user_id) or UserProfile()
        entries.append(
            f"{STATUS_LABELS[r.status]} Request #{r.id}\n"
            f"📱 Client ID: {r.user_id}\n"
            f"📞 Phone: {p.phone or NOT_SET}\n"
            f"📧 Email: {p.email or NOT_SET}\n"
            f"📝 {get_item_name(r.catalog_item_id)}\n"
            f"💰 Price: {money(r.final_price)}\n"
            f"📅 Created: {format_dt(r.created_at)}\n"
        )
    return "📋 Active requests:\n\n" + "\n".join(entries)


def all_requests(requests: list[RepairRequest], profiles: dict[int, UserProfile]) -> str:
    """Every request, newest first, with a heading per calendar day."""
    if not requests:
        return "📋 No requests yet"
    text = "📊 All requests:\n\n"
    current_day = ""
    for r in requests:
        day = format_dt(r.created_at, fmt=DATE_FORMAT)
        if day != current_day:
            current_day = day
            text += f"📅 {day}\n\n"
        p = profiles.get(r.user_id) or UserProfile()
        text += (
            f"{STATUS_LABELS[r.status]} Request #{r.id}\n"
            f"📱 Client ID: {r.user_id}\n"
            f"📞 Phone: {p.phone or NOT_SET}\n"
            f"📧 Email: {p.email or NOT_SET}\n"
            f"📝 {get_item_name(r.catalog_item_id)}\n"
            f"💰 Price: {money(r.final_price)}\n"
            f"⏰ Time: {format_dt(r.created_at, fmt='%H:%M')}\n\n"
        )
    return text


def clients(rollups: list[ClientRollup], profiles: dict[int, UserProfile]) -> str:
    if not rollups:
        return "👥 No clients yet"
    entries = []
    for c in rollups:
        p = profiles.get(c.user_id) or UserProfile()
        entries.append(
            f"👤 Client ID: {c.user_id}\n"
            f"📞 Phone: {p.phone or NOT_SET}\n"
            f"📧 Email: {p.email or NOT_SET}\n"
            f"📊 Requests: {c.total_orders}\n"
            f"💰 Spent: {money(c.total_spent)}\n"
            f"⭐ Points: {c.points}\n"
            f"📅 Last active: {format_dt(c.last_active_at)}\n"
        )
    return "👥 Clients:\n\n" + "\n".join(entries)


def statistics(
    summary: RequestSummary, today: RequestStats, week: RequestStats, month: RequestStats
) -> str:
    text = (
        "📈 Statistics:\n\n"
        f"📊 Total requests: {summary.total}\n"
        f"⏳ Active: {summary.active}\n"
        f"✅ Completed: {summary.completed}\n"
        f"❌ Cancelled: {summary.cancelled}\n"
        f"💰 Total revenue: {money(summary.revenue)}\n"
        f"👥 Unique clients: {summary.unique_clients}\n\n"
    )
    for label, window in (("Today", today), ("This week", week), ("This month", month)):
        text += (
            f"📅 {label}:\n"
            f"• Requests: {window.count}\n"
            f"• Revenue: {money(window.revenue)}\n\n"
        )
    if summary.popular_items:
        text += f"🏆 Top {len(summary.popular_items)} services:\n\n"
        for index, (item_id, count) in enumerate(summary.popular_items, start=1):
            share = round(count / summary.total * 100) if summary.total else 0
            text += f"{index}. {get_item_name(item_id)}\n• Orders: {count}\n• Share: {share}%\n\n"
    return text


def request_card(request: RepairRequest, user_profile: UserProfile) -> str:
    text = (
        f"Request #{request.id}\n\n"
        f"👤 Client ID: {request.user_id}\n"
        f"📞 Phone: {user_profile.phone or NOT_SET}\n"
        f"📧 Email: {user_profile.email or NOT_SET}\n"
        f"📝 Service: {get_item_name(request.catalog_item_id)}\n"
        f"💰 Price: {money(request.final_price)}\n"
        f"📅 Created: {format_dt(request.created_at)}\n"
        f"📋 Status: {STATUS_LABELS[request.status]}\n"
    )
    if request.comment:
        text += f"💬 Comment: {request.comment}\n"
    if request.scheduled_time:
        text += f"⏰ Scheduled: {format_dt(request.scheduled_time)}\n"
    return text


def status_changed(request: RepairRequest) -> str:
    return f"✅ Request #{request.id} is now {STATUS_LABELS[request.status]}"


def broadcast_report(sent: int, failed: int) -> str:
    return f"📢 Broadcast finished\n\n✅ Delivered: {sent}\n❌ Failed: {failed}"


def export_caption(kind: str) -> str:
    if kind == "clients":
        return "👥 Client data exported to CSV"
    return "📊 Statistics exported to CSV"


# ---------------------------------------------------------------------- #
# Input capture prompts and confirmations
# ---------------------------------------------------------------------- #

ASK_BROADCAST = "📢 Enter the broadcast message text:"
ASK_COMMENT = "💬 Enter a comment for the request:"
ASK_SCHEDULE = "📅 Enter date and time as DD.MM.YYYY HH:MM:"
ASK_PHONE = "📱 Enter your phone number:"
ASK_EMAIL = "📧 Now enter your email:"
COMMENT_SAVED = "💬 Comment added to the request"
SCHEDULE_SAVED = "📅 Time scheduled"
CONTACTS_SAVED = "✅ Contact details updated!"
NOTHING_TO_BROADCAST = "📢 There are no clients to send to yet."
LANGUAGE_UNAVAILABLE = "🌍 Language selection is coming in a future update"


def notifications_toggled(enabled: bool) -> str:
    return f"🔔 Notifications {'enabled' if enabled else 'disabled'}"


# ---------------------------------------------------------------------- #
# Failures
# ---------------------------------------------------------------------- #

RATE_LIMITED = "⚠️ Please wait a moment before the next request."
FORBIDDEN = "⛔ You do not have access to this function"
NOT_FOUND = "❓ That request no longer exists."
INVALID_PHONE = "⚠️ Invalid phone number format. Please try again:"
INVALID_EMAIL = "⚠️ Invalid email format. Please try again:"
INVALID_SCHEDULE = "⚠️ Invalid date and time. Please try again (DD.MM.YYYY HH:MM, in the future):"
INVALID_INPUT = "⚠️ That input was not understood. Please try again."
GENERIC_ERROR = "An error occurred while processing your request."


def invalid_transition(request: RepairRequest) -> str:
    return (
        f"⚠️ Request #{request.id} is {STATUS_LABELS[request.status]}; "
        "that change is not allowed."
    )
