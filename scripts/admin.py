#!/usr/bin/env python3
"""
Admin utilities for operating SermonForge.

Commands:
    python scripts/admin.py stats              - Show database stats
    python scripts/admin.py users              - List recent users
    python scripts/admin.py sermons [--status] - List recent sermons
    python scripts/admin.py reset-usage USER   - Zero a user's period counter
    python scripts/admin.py retry SERMON       - Move an errored sermon back to draft
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv  # noqa: E402

from sermonforge.db import get_admin_client  # noqa: E402
from sermonforge.lib.lifecycle import SermonLifecycle  # noqa: E402
from sermonforge.models import SermonStatus  # noqa: E402


def count(client, table, **filters) -> int:
    query = client.table(table).select("id", count="exact")
    for column, value in filters.items():
        query = query.eq(column, value)
    return query.execute().count or 0


def cmd_stats(client, args):
    """Show database statistics."""
    print("\n📊 Database Statistics")
    print("=" * 40)

    print(f"Sermons: {count(client, 'sermons')}")
    for status in SermonStatus:
        print(f"  {status.value:13} {count(client, 'sermons', status=status.value)}")

    print(f"Generated content: {count(client, 'generated_content')}")

    print(f"Subscriptions: {count(client, 'subscriptions')}")
    for status in ("trialing", "active", "past_due", "canceled"):
        print(f"  {status:13} {count(client, 'subscriptions', status=status)}")

    print(f"Analytics events: {count(client, 'analytics_events')}")


def cmd_users(client, args):
    """List recent users with their plan and usage."""
    print("\n👤 Recent Users")
    print("=" * 70)

    result = (
        client.table("subscriptions")
        .select("user_id, plan_id, status, sermon_count, sermon_limit, created_at")
        .order("created_at", desc=True)
        .limit(20)
        .execute()
    )

    for sub in result.data or []:
        limit = sub.get("sermon_limit")
        limit_label = "∞" if limit == -1 else limit
        created = (sub.get("created_at") or "")[:10]
        print(
            f"  [{sub.get('status') or 'unknown':10}] {sub['user_id']:36} "
            f"{sub.get('plan_id') or '':10} {sub.get('sermon_count') or 0}/{limit_label} ({created})"
        )


def cmd_sermons(client, args):
    """List recent sermons."""
    print("\n📖 Recent Sermons")
    print("=" * 70)

    query = client.table("sermons").select("id, title, status, input_type, created_at")
    if args.status:
        query = query.eq("status", SermonStatus(args.status).value)
    result = query.order("created_at", desc=True).limit(args.limit).execute()

    for sermon in result.data or []:
        title = (sermon.get("title") or "")[:30]
        created = (sermon.get("created_at") or "")[:10]
        print(f"  [{sermon['status']:12}] {sermon['id']} {title:30} {sermon['input_type']:10} ({created})")


def cmd_reset_usage(client, args):
    """Reset a user's sermon_count for the current period."""
    result = (
        client.table("subscriptions")
        .update({"sermon_count": 0})
        .eq("user_id", args.user_id)
        .execute()
    )

    if result.data:
        print(f"✓ Usage reset for {args.user_id}")
    else:
        print(f"✗ No subscription for {args.user_id}")


def cmd_retry(client, args):
    """Move a sermon from error back to draft."""
    lifecycle = SermonLifecycle(client)

    if lifecycle.transition(
        args.sermon_id, SermonStatus.ERROR, SermonStatus.DRAFT, extra={"job_event_id": None}
    ):
        print(f"✓ Sermon {args.sermon_id} moved back to draft")
    else:
        print(f"✗ Sermon {args.sermon_id} not found or not in error")


def main():
    parser = argparse.ArgumentParser(description="Admin utilities")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Stats command
    subparsers.add_parser("stats", help="Show database statistics")

    # Users command
    subparsers.add_parser("users", help="List recent users")

    # Sermons command
    sermons_parser = subparsers.add_parser("sermons", help="List recent sermons")
    sermons_parser.add_argument("--status", choices=[s.value for s in SermonStatus])
    sermons_parser.add_argument("--limit", type=int, default=20)

    # Reset usage command
    reset_parser = subparsers.add_parser("reset-usage", help="Zero a user's sermon counter")
    reset_parser.add_argument("user_id", help="User ID")

    # Retry command
    retry_parser = subparsers.add_parser("retry", help="Move an errored sermon back to draft")
    retry_parser.add_argument("sermon_id", help="Sermon ID")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    load_dotenv()
    client = get_admin_client()

    commands = {
        "stats": cmd_stats,
        "users": cmd_users,
        "sermons": cmd_sermons,
        "reset-usage": cmd_reset_usage,
        "retry": cmd_retry,
    }

    commands[args.command](client, args)


if __name__ == "__main__":
    main()
