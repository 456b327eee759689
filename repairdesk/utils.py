"""Shared input helpers used by the dispatcher and the stores."""

import re
from datetime import datetime
from zoneinfo import ZoneInfo

from repairdesk.errors import InvalidInput

SCHEDULE_FORMAT = "%d.%m.%Y %H:%M"

_TAG_RE = re.compile(r"<[^>]*>")
_RU_MOBILE_RE = re.compile(r"^(\+?7|8)?9\d{9}$")


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("8 (912) 345-67-89")
        '89123456789'
        >>> normalize_phone("+7 912 345 67 89")
        '+79123456789'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def is_valid_phone(value: str) -> bool:
    """Accept Russian mobile numbers with or without the +7 / 8 prefix."""
    return bool(_RU_MOBILE_RE.match(normalize_phone(value)))


def sanitize_text(value: str) -> str:
    """Drop every HTML tag and surrounding whitespace from free text."""
    return _TAG_RE.sub("", value).strip()


def parse_schedule_time(value: str, tz_name: str) -> datetime:
    """Parse ``DD.MM.YYYY HH:MM`` as a wall-clock time in the business timezone.

    Raises:
        InvalidInput: If the text does not match the format.
    """
    try:
        naive = datetime.strptime(value.strip(), SCHEDULE_FORMAT)
    except ValueError:
        raise InvalidInput(
            f"Expected date and time as DD.MM.YYYY HH:MM, got {value!r}"
        ) from None
    return naive.replace(tzinfo=ZoneInfo(tz_name))


def split_message(text: str, limit: int) -> list[str]:
    """Split long text into chunks no longer than ``limit``.

    Breaks on line boundaries where possible so that entries are not cut in
    half; a single line longer than the limit is hard-wrapped.
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return chunks
