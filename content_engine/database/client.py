"""
Supabase Client Configuration

Job records and assets are written by server-side processes only
(API handlers, worker, webhook receiver), so everything here uses the
service role client.
"""

from functools import lru_cache

from supabase import create_client, Client

from content_engine.config import config


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be initialized."""
    pass


@lru_cache(maxsize=1)
def get_supabase_admin_client() -> Client:
    """
    Get Supabase client with service role key (admin access).

    WARNING: This client bypasses Row Level Security!
    Only use for server-side operations.
    """
    if not config.SUPABASE_URL:
        raise SupabaseClientError(
            "SUPABASE_URL is not configured. "
            "Set it in your .env file or environment variables."
        )

    if not config.SUPABASE_SERVICE_KEY:
        raise SupabaseClientError(
            "SUPABASE_SERVICE_KEY is not configured. "
            "Set it in your .env file or environment variables."
        )

    return create_client(
        config.SUPABASE_URL,
        config.SUPABASE_SERVICE_KEY
    )


def verify_supabase_connection() -> bool:
    """
    Verify that Supabase is properly configured and accessible.

    Returns:
        True if connection successful, False otherwise.
    """
    try:
        client = get_supabase_admin_client()
        client.table(config.JOBS_TABLE).select("job_id").limit(1).execute()
        return True
    except Exception as e:
        print(f"Supabase connection failed: {e}")
        return False
