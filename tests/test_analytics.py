"""
Analytics recorder and summary tests.
"""

from datetime import datetime, timedelta, timezone

from sermonforge.lib.analytics import (
    AnalyticsService,
    track_content_exported,
    track_event,
    track_sermon_created,
)
from sermonforge.models import EventType

from fakes import USER


NOW = datetime(2025, 3, 20, 12, 0, tzinfo=timezone.utc)


def add_event(db, event_type, days_ago, **data):
    return db.add(
        "analytics_events",
        user_id=USER["id"],
        sermon_id="s-1",
        event_type=event_type,
        event_data=data,
        created_at=(NOW - timedelta(days=days_ago)).isoformat(),
    )


def test_track_event_records_row(db):
    result = track_content_exported(USER["id"], "s-1", "sermon_notes", "pdf", client=db)

    assert result.ok is True
    row = db.rows("analytics_events")[0]
    assert row["event_type"] == "content_exported"
    assert row["event_data"] == {"content_type": "sermon_notes", "format": "pdf"}


def test_tracking_failure_is_not_raised(db):
    """Test: A failed analytics insert is reported, never raised."""
    db.fail_on.add("analytics_events")

    result = track_sermon_created(USER["id"], "s-1", "audio", client=db)

    assert result.ok is False
    assert "unavailable" in result.error


def test_track_event_uses_default_client(db):
    assert track_event(USER["id"], EventType.DEVOTIONAL_VIEWED, "s-1").ok is True
    assert len(db.rows("analytics_events")) == 1


def test_summary(db):
    add_event(db, "sermon_created", 1, input_type="audio")
    add_event(db, "content_generated", 1, content_type="devotional")
    add_event(db, "content_generated", 2, content_type="devotional")
    add_event(db, "content_generated", 2, content_type="sermon_notes")
    add_event(db, "content_exported", 3, content_type="sermon_notes", format="pdf")
    add_event(db, "devotional_viewed", 45)

    summary = AnalyticsService(db).summary(USER["id"], days=30, now=NOW)

    assert summary["totals"] == {
        "sermonsCreated": 1,
        "contentGenerated": 3,
        "contentExported": 1,
        "devotionalsViewed": 0,
    }
    assert summary["contentByType"] == {"devotional": 2, "sermon_notes": 1}
    assert summary["exportsByFormat"] == {"pdf": 1}
    assert summary["mostPopularContentType"] == "devotional"
    assert [d["date"] for d in summary["dailyActivity"]] == ["2025-03-17", "2025-03-18", "2025-03-19"]


def test_summary_empty(db):
    summary = AnalyticsService(db).summary(USER["id"], now=NOW)

    assert summary["mostPopularContentType"] is None
    assert summary["dailyActivity"] == []


def test_export_csv_oldest_first(db):
    add_event(db, "content_exported", 1, content_type="sermon_notes", format="docx")
    add_event(db, "sermon_created", 5, input_type="audio")
    add_event(db, "sermon_created", 120)

    lines = AnalyticsService(db).export_csv(USER["id"], days=90, now=NOW).split("\n")

    assert len(lines) == 3
    assert '"Sermon Created"' in lines[1]
    assert '"Content Exported"' in lines[2]
