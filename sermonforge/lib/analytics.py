"""
Analytics event recorder.
Best-effort: a failed insert is logged and returned as a TrackResult,
never raised. Primary workflows ignore the result.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..db import get_admin_client
from ..exporters.csv_export import build_analytics_csv
from ..models import EventType


logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    ok: bool
    error: Optional[str] = None


def track_event(
    user_id: str,
    event_type: EventType,
    sermon_id: Optional[str] = None,
    event_data: Optional[dict] = None,
    client=None,
) -> TrackResult:
    """Append one analytics event."""
    try:
        client = client or get_admin_client()
        client.table("analytics_events").insert({
            "user_id": user_id,
            "sermon_id": sermon_id,
            "event_type": EventType(event_type).value,
            "event_data": event_data or {},
        }).execute()
        return TrackResult(ok=True)
    except Exception as e:
        logger.warning("Failed to track %s for user %s: %s", event_type, user_id, e)
        return TrackResult(ok=False, error=str(e))


def track_sermon_created(user_id: str, sermon_id: str, input_type: str, client=None) -> TrackResult:
    return track_event(
        user_id, EventType.SERMON_CREATED, sermon_id,
        {"input_type": input_type}, client=client,
    )


def track_content_generated(user_id: str, sermon_id: str, content_type: str, client=None) -> TrackResult:
    return track_event(
        user_id, EventType.CONTENT_GENERATED, sermon_id,
        {"content_type": content_type}, client=client,
    )


def track_content_exported(
    user_id: str, sermon_id: str, content_type: str, export_format: str, client=None
) -> TrackResult:
    return track_event(
        user_id, EventType.CONTENT_EXPORTED, sermon_id,
        {"content_type": content_type, "format": export_format}, client=client,
    )


def track_devotional_viewed(user_id: str, sermon_id: str, client=None) -> TrackResult:
    return track_event(user_id, EventType.DEVOTIONAL_VIEWED, sermon_id, client=client)


class AnalyticsService:
    """Read side: summaries and raw event windows for export."""

    def __init__(self, client=None):
        self.client = client or get_admin_client()

    def get_events(self, user_id: str, days: int, now: Optional[datetime] = None) -> list:
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=days)
        result = (
            self.client.table("analytics_events")
            .select("*")
            .eq("user_id", user_id)
            .gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .execute()
        )
        return result.data or []

    def summary(self, user_id: str, days: int = 30, now: Optional[datetime] = None) -> dict:
        """
        Aggregate the last `days` days of events.

        Returns counts per event type, generated content per type, exports per
        format, per-day activity and the most generated content type.
        """
        events = self.get_events(user_id, days, now)

        by_type = Counter(e["event_type"] for e in events)
        content_by_type = Counter()
        exports_by_format = Counter()
        daily = Counter()

        for event in events:
            data = event.get("event_data") or {}
            if event["event_type"] == EventType.CONTENT_GENERATED.value and data.get("content_type"):
                content_by_type[data["content_type"]] += 1
            if event["event_type"] == EventType.CONTENT_EXPORTED.value and data.get("format"):
                exports_by_format[data["format"]] += 1
            created = str(event.get("created_at") or "")[:10]
            if created:
                daily[created] += 1

        most_popular = content_by_type.most_common(1)

        return {
            "period": {"days": days},
            "totals": {
                "sermonsCreated": by_type.get(EventType.SERMON_CREATED.value, 0),
                "contentGenerated": by_type.get(EventType.CONTENT_GENERATED.value, 0),
                "contentExported": by_type.get(EventType.CONTENT_EXPORTED.value, 0),
                "devotionalsViewed": by_type.get(EventType.DEVOTIONAL_VIEWED.value, 0),
            },
            "contentByType": dict(content_by_type),
            "exportsByFormat": dict(exports_by_format),
            "dailyActivity": [
                {"date": day, "count": daily[day]} for day in sorted(daily)
            ],
            "mostPopularContentType": most_popular[0][0] if most_popular else None,
        }

    def export_csv(self, user_id: str, days: int = 90, now: Optional[datetime] = None) -> str:
        """Events of the last `days` days as CSV, oldest first."""
        events = sorted(self.get_events(user_id, days, now), key=lambda e: str(e.get("created_at") or ""))
        return build_analytics_csv(events)
