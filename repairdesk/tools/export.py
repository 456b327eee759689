"""CSV rendering of the request and client export rows."""

import csv
import io
from datetime import datetime
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

EXPORT_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
FILENAME_STAMP_FORMAT = "%Y-%m-%d_%H-%M"


def to_csv(columns: list[str], rows: Iterable[dict[str, Any]], tz_name: Optional[str] = None) -> str:
    """Render rows as CSV with a header in exactly the given column order.

    Datetimes are written as wall-clock time in ``tz_name`` (UTC if omitted).
    """
    tz = ZoneInfo(tz_name or "UTC")
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row[col], tz) for col in columns])
    return buffer.getvalue()


def _cell(value: Any, tz: ZoneInfo) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(tz).strftime(EXPORT_DATETIME_FORMAT)
    return value


def export_filename(prefix: str, now: datetime, tz_name: Optional[str] = None) -> str:
    """e.g. ``statistics_2025-03-15_10-00.csv``"""
    stamp = now.astimezone(ZoneInfo(tz_name or "UTC")).strftime(FILENAME_STAMP_FORMAT)
    return f"{prefix}_{stamp}.csv"
