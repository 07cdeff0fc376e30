"""
Analytics CSV.
Header row is bare; every data cell is quoted with embedded quotes doubled.
Rows are separated by a single newline.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional


CSV_HEADER = ["Date", "Time", "Event Type", "Content Type", "Format", "Sermon ID"]

EVENT_LABELS = {
    "sermon_created": "Sermon Created",
    "content_generated": "Content Generated",
    "content_exported": "Content Exported",
    "devotional_viewed": "Devotional Viewed",
}


def _parse(value) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def quote(value) -> str:
    return '"' + str(value if value is not None else "").replace('"', '""') + '"'


def format_date(moment: datetime) -> str:
    """US style, no zero padding: 3/7/2025."""
    return f"{moment.month}/{moment.day}/{moment.year}"


def format_time(moment: datetime) -> str:
    """12-hour clock: 9:05:00 AM."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d}:{moment.second:02d} {suffix}"


def event_row(event: dict) -> list:
    moment = _parse(event.get("created_at"))
    data = event.get("event_data") or {}
    return [
        format_date(moment),
        format_time(moment),
        EVENT_LABELS.get(event.get("event_type"), event.get("event_type") or ""),
        data.get("content_type") or "",
        data.get("format") or "",
        event.get("sermon_id") or "",
    ]


def build_analytics_csv(events: Iterable[dict]) -> str:
    lines = [",".join(CSV_HEADER)]
    for event in events:
        lines.append(",".join(quote(cell) for cell in event_row(event)))
    return "\n".join(lines)


def analytics_filename(today: Optional[datetime] = None) -> str:
    today = today or datetime.now(timezone.utc)
    return f"sermonforge_analytics_{today.strftime('%Y-%m-%d')}.csv"
