"""Supabase client for the dispatch backend."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

# Table names shared with the front desk application.
SERVICES_TABLE = "services"
ROUTES_TABLE = "routes"
HOTELS_TABLE = "hotels"
AGENTS_TABLE = "users"


@lru_cache()
def get_supabase_client() -> Client | None:
    """Get cached Supabase client instance.

    Returns None when credentials are missing. Creating the client does not
    test the connection; queries may still fail with network errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (missing URL or key)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client: {e}")
        return None
