"""Supabase client singleton for database operations."""

from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from src.core.config import get_settings


@lru_cache
def get_supabase_client() -> Client:
    """Get cached Supabase client singleton for database operations.

    Uses the secret key, which bypasses RLS at the PostgREST level. Only
    server-side code that has already decided the caller may perform the
    operation should use it.

    Returns:
        Client: Supabase client instance.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_secret_key,
    )


async def check_database_connection(client: Client | None = None) -> dict[str, Any]:
    """Check if database connection is healthy.

    Args:
        client: Optional client to probe; defaults to the shared client.

    Returns:
        dict: Connection status with 'healthy' boolean and optional 'error' message.
    """
    try:
        client = client or get_supabase_client()
        client.table("orders").select("id").limit(1).execute()
        return {"healthy": True}
    except Exception as e:
        return {"healthy": False, "error": str(e)}


def ilike_any(columns: list[str], term: str) -> str:
    """Build a PostgREST ``or`` filter matching ``term`` in any of ``columns``.

    The pattern is double-quoted so reserved characters in user input
    (``,``, ``.``, ``:``, ``(``, ``)``) stay part of the value instead of
    being read as filter syntax.

    Args:
        columns: Column names to search.
        term: Raw search text.

    Returns:
        str: Expression for ``query.or_()``.
    """
    escaped = term.replace("\\", "\\\\").replace('"', '\\"')
    return ",".join(f'{column}.ilike."%{escaped}%"' for column in columns)
