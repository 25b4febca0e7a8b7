"""
Supabase client initialization.

This module contains *only* the database connection setup. The client is created
on first use so that the in-memory backend and the test-suite never need
Supabase credentials.

Environment variables required for the supabase backend:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

from functools import lru_cache

from supabase import Client, create_client  # type: ignore[import-not-found]

from config import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Return the shared Supabase client, creating it on first call."""

    settings = get_settings()

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


__all__ = ["get_supabase"]
