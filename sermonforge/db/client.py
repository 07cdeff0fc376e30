"""
Supabase client configuration.
Two clients: one for verifying user sessions, one for service-side access.

Every query made through the admin client is scoped by owner id in the
service layer, mirroring the RLS policies in schema.py.
"""

import os
from functools import lru_cache
from supabase import create_client, Client, ClientOptions


# Sermon media can be up to 500MB; storage calls get a long timeout
STORAGE_TIMEOUT_SECONDS = int(os.environ.get("SUPABASE_STORAGE_TIMEOUT", "300"))
POSTGREST_TIMEOUT_SECONDS = 30


def _build_client(key_var: str) -> Client:
    url = os.environ.get("SUPABASE_URL")
    key = os.environ.get(key_var)

    if not url or not key:
        raise ValueError(f"SUPABASE_URL and {key_var} must be set")

    options = ClientOptions(
        postgrest_client_timeout=POSTGREST_TIMEOUT_SECONDS,
        storage_client_timeout=STORAGE_TIMEOUT_SECONDS,
    )
    return create_client(url, key, options=options)


@lru_cache()
def get_supabase_client() -> Client:
    """
    Anon-key client (respects RLS).
    Only used to resolve bearer tokens into users.
    """
    return _build_client("SUPABASE_KEY")


@lru_cache()
def get_admin_client() -> Client:
    """
    Service-role client (bypasses RLS).
    Used by request handlers (always filtered by the caller's user id),
    Stripe webhooks, job callbacks and operator scripts.
    """
    return _build_client("SUPABASE_SERVICE_KEY")
