"""
Database access for the EduSpark backend.

Two ways in:
- get_supabase_client(): the service-role Supabase client used by the
  entitlement and payment stores. They are the trusted side of the
  entitlement boundary and write on behalf of users (consumption,
  webhook upgrades, admin edits), so RLS is bypassed.
- get_postgres_connection(): a direct psycopg2 connection for schema
  migrations and config seeding, which need DDL the REST API cannot run.
"""

from typing import Optional

import psycopg2
from supabase import create_client, Client

from .config import get_settings

# Module-level client cache
_service_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client with service role (bypasses RLS).

    Raises:
        RuntimeError: If SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is unset
    """
    global _service_client

    if _service_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "Supabase configuration missing. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables."
            )
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client


def get_postgres_connection():
    """
    Open a new direct connection to the database at SUPABASE_DB_URL.

    The caller owns the connection and must close it.

    Raises:
        RuntimeError: If SUPABASE_DB_URL is unset
        psycopg2.Error: If the connection fails
    """
    url = get_settings().supabase_db_url
    if not url:
        raise RuntimeError(
            "Database URL missing. Set SUPABASE_DB_URL to the Postgres connection URI "
            "(Supabase Dashboard → Settings → Database → Connection string)."
        )
    return psycopg2.connect(url)


def reset_client_cache() -> None:
    """
    Reset the cached Supabase client.

    Useful for testing or when configuration changes.
    """
    global _service_client
    _service_client = None
