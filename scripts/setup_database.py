#!/usr/bin/env python3
"""
Set up the database schema.
Run this once to create tables, row level security policies, indexes
and storage buckets.

Usage:
    python scripts/setup_database.py            # print the SQL
    python scripts/setup_database.py --apply    # run it against Postgres
    python scripts/setup_database.py --check    # list missing tables

Note: --apply connects through DATABASE_URL / SUPABASE_DB_URL (see
sermonforge/db/postgres.py). Policies are not idempotent, so only apply
against a fresh project; otherwise paste the SQL into the Supabase SQL editor.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import psycopg2  # noqa: E402
from dotenv import load_dotenv  # noqa: E402

from sermonforge.db.schema import INDEXES_SQL, SCHEMA_SQL, STORAGE_SQL  # noqa: E402


def print_schema(include_storage: bool):
    """Print the schema SQL for manual execution."""
    print("=" * 60)
    print("DATABASE SCHEMA")
    print("=" * 60)
    print("\nCopy and paste this SQL into Supabase SQL Editor:\n")
    print("-" * 60)
    print(SCHEMA_SQL)
    print("-" * 60)
    print("\nINDEXES:")
    print("-" * 60)
    print(INDEXES_SQL)
    if include_storage:
        print("-" * 60)
        print("\nSTORAGE BUCKETS:")
        print("-" * 60)
        print(STORAGE_SQL)
    print("-" * 60)


def check_tables() -> int:
    from sermonforge.db.postgres import get_postgres_connection, missing_tables

    conn = get_postgres_connection()
    try:
        missing = missing_tables(conn)
    finally:
        conn.close()

    if missing:
        print(f"✗ Missing tables: {', '.join(missing)}")
        return 1
    print("✓ All tables present")
    return 0


def apply(include_storage: bool) -> int:
    from sermonforge.db.postgres import apply_schema, get_postgres_connection

    conn = get_postgres_connection()
    try:
        apply_schema(conn, include_storage=include_storage)
    except psycopg2.Error as e:
        conn.rollback()
        print(f"✗ Schema setup failed: {e}")
        return 1
    finally:
        conn.close()

    print("✓ Schema applied")
    return 0


def main():
    parser = argparse.ArgumentParser(description="SermonForge database setup")
    parser.add_argument("--apply", action="store_true", help="Run the SQL against Postgres")
    parser.add_argument("--check", action="store_true", help="Report missing tables")
    parser.add_argument("--no-storage", action="store_true", help="Skip storage bucket setup")
    args = parser.parse_args()

    load_dotenv()
    include_storage = not args.no_storage

    print("SermonForge - Database Setup")
    print("=" * 40)
    print()

    if args.check:
        sys.exit(check_tables())
    if args.apply:
        sys.exit(apply(include_storage))

    print("This script outputs the SQL schema for your database.")
    print("Re-run with --apply to execute it directly.")
    print()

    print_schema(include_storage)

    print()
    print("Next steps:")
    print("1. Go to your Supabase project dashboard")
    print("2. Open the SQL Editor")
    print("3. Paste the schema SQL above and run it")
    print("4. Then run: python scripts/setup_database.py --check")


if __name__ == "__main__":
    main()
