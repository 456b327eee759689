"""Button layouts and callback payloads, independent of any transport."""

from dataclasses import dataclass

from repairdesk.core.lifecycle import valid_targets
from repairdesk.schemas.catalog_schema import CatalogItem
from repairdesk.schemas.request_schema import RepairRequest, RequestStatus
from repairdesk.tools.catalog import HELP_TOPICS


@dataclass(frozen=True)
class Button:
    """An inline button: label plus the callback payload it sends."""
    text: str
    callback_data: str


Keyboard = list[list[Button]]

# Reply-keyboard labels mapped to dispatcher commands.
CUSTOMER_MENU: list[list[tuple[str, str]]] = [
    [("🔧 Order repair", "services"), ("📱 My profile", "profile")],
    [("🎁 Special offers", "offers"), ("❓ Help", "help")],
    [("⚙️ Settings", "settings"), ("📞 Contacts", "contacts")],
]

OPERATOR_MENU: list[list[tuple[str, str]]] = [
    [("📋 Active requests", "active"), ("📊 All requests", "all")],
    [("👥 Clients", "clients"), ("📈 Statistics", "stats")],
    [("📢 Broadcast", "broadcast"), ("🏠 Main menu", "start")],
]

OPERATOR_ENTRY = ("⚙️ Operator panel", "admin")

MENU_COMMANDS: dict[str, str] = {
    label: command
    for rows in (CUSTOMER_MENU, OPERATOR_MENU, [[OPERATOR_ENTRY]])
    for row in rows
    for label, command in row
}


def menu_layout(is_operator: bool) -> list[list[str]]:
    """Reply-keyboard labels for the main menu."""
    rows = [[label for label, _ in row] for row in CUSTOMER_MENU]
    if is_operator:
        rows.append([OPERATOR_ENTRY[0]])
    return rows


def operator_layout() -> list[list[str]]:
    return [[label for label, _ in row] for row in OPERATOR_MENU]


BACK_TO_MAIN = Button("🔙 Back", "back_to_main")
BACK_TO_ADMIN = Button("🔙 Back", "back_to_admin")

STATUS_BUTTONS: dict[RequestStatus, str] = {
    RequestStatus.PENDING: "⏳ Pending",
    RequestStatus.IN_PROGRESS: "🔧 In progress",
    RequestStatus.COMPLETED: "✅ Completed",
    RequestStatus.CANCELLED: "❌ Cancelled",
}


def services_keyboard(items: list[CatalogItem]) -> Keyboard:
    return [[Button(f"{item.name} - {item.price}", item.id)] for item in items]


def offers_keyboard(items: list[CatalogItem]) -> Keyboard:
    rows = [
        [Button(f"{item.name} - {item.price} ({item.points} points)", item.id)]
        for item in items
    ]
    rows.append([BACK_TO_MAIN])
    return rows


def help_keyboard() -> Keyboard:
    rows = [[Button(topic["title"], f"help_{key}")] for key, topic in HELP_TOPICS.items()]
    rows.append([BACK_TO_MAIN])
    return rows


def settings_keyboard() -> Keyboard:
    return [
        [Button("🔔 Notifications", "settings_notifications")],
        [Button("📱 Contact details", "settings_contacts")],
        [Button("🌍 Language", "settings_language")],
        [BACK_TO_MAIN],
    ]


def profile_keyboard() -> Keyboard:
    return [
        [Button("📋 Order history", "show_history")],
        [Button("⚙️ Profile settings", "settings_profile")],
        [BACK_TO_MAIN],
    ]


def request_list_keyboard(requests: list[RepairRequest]) -> Keyboard:
    rows = [[Button(f"✏️ Request #{r.id}", f"update_{r.id}")] for r in requests]
    rows.append([BACK_TO_ADMIN])
    return rows


def request_card_keyboard(request: RepairRequest) -> Keyboard:
    """Status buttons for the moves the lifecycle allows, then edit actions."""
    rows: Keyboard = []
    targets = valid_targets(request.status)
    if targets:
        rows.append([
            Button(STATUS_BUTTONS[s], f"status_{request.id}_{s.value}") for s in targets
        ])
        rows.append([
            Button("📝 Add comment", f"comment_{request.id}"),
            Button("📅 Schedule", f"schedule_{request.id}"),
        ])
    rows.append([BACK_TO_ADMIN])
    return rows


def back_to_request(request_id: int) -> Keyboard:
    return [[Button("🔙 Back to request", f"update_{request_id}")]]


def clients_keyboard() -> Keyboard:
    return [[Button("📊 Export data", "export_clients")], [BACK_TO_ADMIN]]


def stats_keyboard() -> Keyboard:
    return [[Button("📥 Export data", "export_stats")], [BACK_TO_ADMIN]]


def back_to_settings() -> Keyboard:
    return [[Button("🔙 Back to settings", "settings_profile")]]
