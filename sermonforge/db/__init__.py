from .schema import SCHEMA_SQL, INDEXES_SQL, STORAGE_SQL
from .client import get_supabase_client, get_admin_client

__all__ = [
    "SCHEMA_SQL",
    "INDEXES_SQL",
    "STORAGE_SQL",
    "get_supabase_client",
    "get_admin_client",
]
