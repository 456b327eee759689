"""
Offline console demo: drives the full repair desk without Telegram.

Uses the real dispatcher, stores, reminder scheduler and rate limiter.
Notifications for other users are printed inline, and a simulated clock
lets reminders come due on demand. No token, no network calls.

Input:
    /services        a command
    #service_1       a button press (callback payload)
    anything else    free text (menu labels are recognised too)
    :op / :client    switch between the operator and the client
    :wait HOURS      advance the clock and fire due reminders

Usage:
    python console_demo.py
    python console_demo.py --scenario customer
    python console_demo.py --scenario operator
"""

import argparse
import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from repairdesk.bot.app import build_desk
from repairdesk.bot.dispatcher import Reply
from repairdesk.config import settings
from repairdesk.schemas.request_schema import EventKind, InboundEvent, NotificationIntent
from repairdesk.utils import SCHEDULE_FORMAT

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

CLIENT_ID = 1001
OPERATOR_ID = 9001


class SimulatedClock:
    """Wall clock plus a manually advanced offset."""

    def __init__(self) -> None:
        self.offset = timedelta()

    def __call__(self) -> datetime:
        return datetime.now(timezone.utc) + self.offset

    def advance(self, delta: timedelta) -> None:
        self.offset += delta


class ConsoleNotifier:
    """Prints outbound notifications instead of sending them."""

    async def notify(self, intent: NotificationIntent) -> None:
        print(f"{YELLOW}  [notify -> {intent.target_user_id} | {intent.urgency.value}]{RESET}")
        for line in intent.text.splitlines():
            print(f"{YELLOW}    {line}{RESET}")


class ConsoleSession:
    """Simulates one client and one operator chatting with the bot."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "customer": [
            "/start",
            "🔧 Order repair",
            "#service_1",
            ":wait 0.001",
            "#settings_contacts",
            "12345",
            "+7 912 345 67 89",
            "client@example.com",
            ":wait 0.001",
            "/profile",
            ":wait 25",
        ],
        "operator": [
            "/start",
            "#offer_2",
            ":op",
            "/active",
            ":last_card",
            ":last_in_progress",
            ":last_schedule",
            ":tomorrow",
            ":wait 23",
            ":wait 0.001",
            "/stats",
            ":wait 0.001",
            "#export_stats",
        ],
    }

    MAX_INPUT_LENGTH = 1000

    def __init__(self) -> None:
        self.clock = SimulatedClock()
        self.desk = build_desk(
            ConsoleNotifier(),
            clock=self.clock,
            operator_ids=(OPERATOR_ID,),
        )
        self.user_id = CLIENT_ID

    @property
    def role(self) -> str:
        return "Operator" if self.user_id == OPERATOR_ID else "Client"

    def bot_say(self, reply: Reply) -> None:
        print(f"{GREEN}{BOLD}[Bot]{RESET} {GREEN}{reply.text}{RESET}")
        for row in reply.buttons:
            print(f"{DIM}  " + "  ".join(f"[{b.text} #{b.callback_data}]" for b in row) + RESET)
        if reply.menu:
            print(f"{DIM}  menu: " + " | ".join(label for row in reply.menu for label in row) + RESET)
        if reply.document is not None:
            print(f"{DIM}  file {reply.document.filename}:{RESET}")
            for line in reply.document.content.decode("utf-8").splitlines():
                print(f"{DIM}    {line}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    # ------------------------------------------------------------------ #
    # Input handling
    # ------------------------------------------------------------------ #

    def _to_event(self, text: str) -> InboundEvent:
        if text.startswith("/"):
            kind, payload = EventKind.COMMAND, text[1:]
        elif text.startswith("#"):
            kind, payload = EventKind.CALLBACK_ACTION, text[1:]
        else:
            kind, payload = EventKind.FREE_TEXT, text
        return InboundEvent(
            conversation_id=self.user_id, user_id=self.user_id, kind=kind, payload=payload
        )

    async def _control(self, text: str) -> str:
        """Handle ``:`` control lines. Returns a line to dispatch, or ''."""
        name, _, arg = text[1:].partition(" ")
        if name in ("op", "client"):
            self.user_id = OPERATOR_ID if name == "op" else CLIENT_ID
            self.system_log(f"Acting as {self.role} ({self.user_id})")
        elif name == "wait":
            try:
                hours = float(arg or "0")
            except ValueError:
                print(f"{RED}Expected a number of hours, got {arg!r}{RESET}")
                return ""
            self.clock.advance(timedelta(hours=hours))
            fired = await self.desk.scheduler.run_due()
            self.system_log(f"Clock advanced {arg}h, {fired} reminder(s) fired")
        elif name.startswith("last_"):
            # Shortcuts that need the newest request id
            latest = self.desk.requests.all()
            if not latest:
                return ""
            request_id = latest[0].id
            action = name[len("last_"):]
            if action == "card":
                return f"#update_{request_id}"
            if action == "schedule":
                return f"#schedule_{request_id}"
            return f"#status_{request_id}_{action}"
        elif name == "tomorrow":
            when = (self.clock() + timedelta(days=1)).astimezone(ZoneInfo(settings.business.timezone))
            return when.strftime(SCHEDULE_FORMAT)
        else:
            print(f"{RED}Unknown control: {name}{RESET}")
        return ""

    async def process(self, text: str) -> None:
        if text.startswith(":"):
            text = await self._control(text)
            if not text:
                return
            print(f"{BLUE}[{self.role}] {RESET}{text}")
        for reply in await self.desk.dispatcher.handle(self._to_event(text)):
            self.bot_say(reply)

    # ------------------------------------------------------------------ #
    # Runners
    # ------------------------------------------------------------------ #

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  REPAIR DESK - {title}{RESET}")
        print(f"{BOLD}  Business: {settings.business.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        for step in steps:
            if not step.startswith(":"):
                print(f"\n{BLUE}[{self.role}] {RESET}{step}")
            await self.process(step)

        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  Scenario '{scenario}' complete.{RESET}")
        print(f"{DIM}  Live reminders: {len(self.desk.scheduler.pending())}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{DIM}  /command  #button  :op  :client  :wait HOURS  quit{RESET}")

        while True:
            user_input = input(f"\n{BLUE}[{self.role}] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                return
            if len(user_input) > self.MAX_INPUT_LENGTH:
                print(f"{RED}Input too long.{RESET}")
                continue
            await self.process(user_input)


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline console demo")
    parser.add_argument(
        "--scenario",
        choices=sorted(ConsoleSession.SCENARIOS),
        default=None,
        help="Auto-play a pre-scripted scenario instead of interactive mode",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(session.run())


if __name__ == "__main__":
    main()
