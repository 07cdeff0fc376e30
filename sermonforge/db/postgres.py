"""
Direct Postgres access for operator scripts.

The API talks to Supabase through the REST client; schema setup and
admin maintenance go straight to Postgres.

Connection resolution order:
1. DATABASE_URL
2. SUPABASE_DB_URL
3. Supabase pooler URL built from SUPABASE_URL + SUPABASE_SERVICE_KEY

Usage:
    from sermonforge.db.postgres import get_postgres_connection, apply_schema

    conn = get_postgres_connection()
    apply_schema(conn)
"""

import os
import re

import psycopg2
from psycopg2.extensions import connection

from .schema import SCHEMA_SQL, INDEXES_SQL, STORAGE_SQL


REQUIRED_TABLES = (
    "users_metadata",
    "sermons",
    "generated_content",
    "subscriptions",
    "analytics_events",
)


def get_database_url() -> str:
    """
    Get database connection URL from environment.

    Raises:
        ValueError: If no valid connection configuration found
    """
    if database_url := os.environ.get("DATABASE_URL"):
        return database_url

    if supabase_db_url := os.environ.get("SUPABASE_DB_URL"):
        return supabase_db_url

    supabase_url = os.environ.get("SUPABASE_URL")
    supabase_key = os.environ.get("SUPABASE_SERVICE_KEY")

    if supabase_url and supabase_key:
        # https://<project-ref>.supabase.co
        match = re.match(r"https://([^.]+)\.supabase\.co", supabase_url)
        if match:
            project_ref = match.group(1)
            region = os.environ.get("SUPABASE_REGION", "us-east-1")
            return (
                f"postgresql://postgres.{project_ref}:{supabase_key}"
                f"@aws-0-{region}.pooler.supabase.com:6543/postgres"
            )

    raise ValueError(
        "No database connection configured. Set one of:\n"
        "  - DATABASE_URL: Direct PostgreSQL connection string\n"
        "  - SUPABASE_DB_URL: Supabase direct connection string\n"
        "  - SUPABASE_URL + SUPABASE_SERVICE_KEY: Supabase project credentials"
    )


def get_postgres_connection() -> connection:
    """Open a psycopg2 connection using get_database_url()."""
    database_url = get_database_url()

    try:
        return psycopg2.connect(database_url)
    except psycopg2.Error as e:
        raise psycopg2.Error(
            f"Failed to connect to database. Error: {e}\n"
            f"Check that DATABASE_URL is correct and the database is accessible."
        ) from e


def check_table_exists(conn: connection, table_name: str) -> bool:
    """Check if a table exists in the public schema."""
    with conn.cursor() as cur:
        cur.execute("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public'
                AND table_name = %s
            )
        """, (table_name,))
        return cur.fetchone()[0]


def missing_tables(conn: connection) -> list:
    """Return the required tables that are not present yet."""
    return [name for name in REQUIRED_TABLES if not check_table_exists(conn, name)]


def apply_schema(conn: connection, include_storage: bool = True) -> None:
    """
    Create tables, policies, indexes and storage buckets in one transaction.
    Policies are not idempotent, so only run this against a fresh database.
    """
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
        cur.execute(INDEXES_SQL)
        if include_storage:
            cur.execute(STORAGE_SQL)
    conn.commit()
