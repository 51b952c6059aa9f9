"""
Database connections: Supabase client setup.

The API and the background jobs share one service_role client. Row-level
security policies on `users`, `user_academic_details`, `user_handbooks` and
the `handbooks` bucket key on `auth.uid()`, which this service never has:
callers are identified by our own bearer token, and every user-scoped query
filters on that user_id explicitly (see AcademicContextResolver).
"""

from functools import lru_cache
from supabase import create_client, Client

from app.config import get_settings


@lru_cache
def get_supabase_admin_client() -> Client:
    """Get the Supabase admin client (service_role key, bypasses RLS).

    Raises:
        ValueError: If SUPABASE_SERVICE_KEY is not configured. There is no
            anon fallback: under RLS it would see no rows at all.
    """
    settings = get_settings()
    if not settings.SUPABASE_SERVICE_KEY:
        raise ValueError("SUPABASE_SERVICE_KEY not configured")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
